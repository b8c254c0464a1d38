"""
Middleware package
"""
from laundry.middleware.request_id import RequestIdMiddleware, RequestIdFilter

__all__ = ['RequestIdMiddleware', 'RequestIdFilter']
