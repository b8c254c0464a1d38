"""
API blueprints
"""
from laundry.blueprints.admin import admin_bp
from laundry.blueprints.driver import driver_bp
from laundry.blueprints.laundromat import laundromat_bp
from laundry.blueprints.orders import orders_bp
from laundry.blueprints.payments import payments_bp
from laundry.blueprints.webhooks import webhook_bp

__all__ = ['admin_bp', 'driver_bp', 'laundromat_bp', 'orders_bp', 'payments_bp', 'webhook_bp']
