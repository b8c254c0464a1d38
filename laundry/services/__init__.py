"""
Domain services: pricing, the order status state machine, the order
lifecycle, payments, routing and membership.
"""
