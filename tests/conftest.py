"""
Pytest configuration and fixtures for the laundry backend tests
"""
import pytest
import os
from datetime import date, datetime, time, timedelta, timezone
import jwt
from flask import g

from laundry import create_app
from laundry.models import (
    db, User, Customer, Membership, Laundromat, LaundromatServiceArea, LaundromatStaff, TimeWindow,
)
from laundry.services import orders as order_service
from laundry.services.payments import get_gateway


@pytest.fixture(scope='function')
def app():
    """Create application instance for testing (fresh in-memory database per test)"""
    os.environ['FLASK_ENV'] = 'testing'
    app = create_app('testing')

    # The fixture holds one app context across requests, so flask.g would
    # otherwise carry the cached identity from one request into the next.
    @app.teardown_request
    def _reset_cached_identity(exc):
        g.pop('identity', None)

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client"""
    return app.test_client()


@pytest.fixture
def gateway(app):
    """The in-memory payment gateway the app is using"""
    return get_gateway()


@pytest.fixture
def user_factory(app):
    def _create_user(email, roles, name=None):
        user = User(email=email, name=name or email.split('@')[0], roles=list(roles), is_active=True)
        db.session.add(user)
        db.session.commit()
        return user
    return _create_user


@pytest.fixture
def customer_user(user_factory):
    return user_factory('jamie@example.com', ['customer'], name='Jamie Customer')


@pytest.fixture
def staff_user(user_factory):
    return user_factory('staff@suds.example.com', ['laundromat_staff'], name='Sam Staff')


@pytest.fixture
def driver_user(user_factory):
    return user_factory('driver@example.com', ['driver'], name='Dana Driver')


@pytest.fixture
def admin_user(user_factory):
    return user_factory('admin@bagsoflaundry.com', ['admin'], name='Alex Admin')


def _headers_for(app, user):
    token = jwt.encode({
        'user_id': user.id,
        'exp': datetime.now(timezone.utc) + timedelta(hours=1)
    }, app.config['JWT_SECRET'], algorithm='HS256')

    return {
        'Authorization': f'Bearer {token}',
        'Content-Type': 'application/json'
    }


@pytest.fixture
def auth_headers(app, customer_user):
    """Generate auth headers with JWT token for the customer"""
    return _headers_for(app, customer_user)


@pytest.fixture
def staff_headers(app, staff_user, laundromat):
    """Generate auth headers with JWT token for laundromat staff"""
    return _headers_for(app, staff_user)


@pytest.fixture
def driver_headers(app, driver_user):
    return _headers_for(app, driver_user)


@pytest.fixture
def admin_headers(app, admin_user):
    return _headers_for(app, admin_user)


@pytest.fixture
def headers_for(app):
    def _make(user):
        return _headers_for(app, user)
    return _make


@pytest.fixture
def time_window(app):
    window = TimeWindow(label='morning', start_time=time(8, 0), end_time=time(12, 0))
    db.session.add(window)
    db.session.add(TimeWindow(label='evening', start_time=time(16, 0), end_time=time(20, 0)))
    db.session.commit()
    return window


@pytest.fixture
def laundromat(app, staff_user):
    """A laundromat serving ZIP 48201, with staff_user on its staff"""
    laundromat = Laundromat(name='Midtown Suds', contact_email='hello@suds.example.com', max_daily_orders=50)
    db.session.add(laundromat)
    db.session.flush()
    db.session.add(LaundromatServiceArea(laundromat_id=laundromat.id, zip_code='48201'))
    db.session.add(LaundromatStaff(auth_user_id=staff_user.id, laundromat_id=laundromat.id))
    db.session.commit()
    return laundromat


@pytest.fixture
def pickup_date():
    return date.today() + timedelta(days=7)


@pytest.fixture
def order_data(time_window, pickup_date):
    """A valid create-order body; override keys per test"""
    return {
        'customerName': 'Jamie Customer',
        'customerEmail': 'jamie@example.com',
        'customerPhone': '313-555-0142',
        'smsOptIn': True,
        'orderType': 'per_pound',
        'pickupDate': pickup_date.isoformat(),
        'pickupTimeWindowId': 'Morning',
        'pickupAddress': {
            'line1': '4400 Woodward Ave',
            'city': 'Detroit',
            'state': 'MI',
            'postal_code': '48201',
        },
    }


@pytest.fixture
def order_factory(app, customer_user, laundromat, order_data):
    """Place orders through the order service, as the create-order endpoint does"""
    def _create_order(**overrides):
        data = dict(order_data)
        data.update(overrides)
        placement = order_service.create_order(data, customer_user.id)
        return placement.order
    return _create_order


@pytest.fixture
def per_pound_order(order_factory):
    return order_factory(orderType='per_pound')


@pytest.fixture
def bag_order_factory(order_factory, member):
    """Bag pricing is members-only, so bag orders come from a member"""
    return order_factory


@pytest.fixture
def medium_bag_order(bag_order_factory):
    return bag_order_factory(orderType='medium_bag')


@pytest.fixture
def member(app, customer_user):
    """Give customer_user an active membership"""
    customer = Customer.query.filter_by(auth_user_id=customer_user.id).first()
    if customer is None:
        customer = Customer(auth_user_id=customer_user.id, full_name='Jamie Customer', email='jamie@example.com')
        db.session.add(customer)
        db.session.flush()
    now = datetime.now(timezone.utc)
    db.session.add(Membership(
        customer_id=customer.id,
        status='active',
        stripe_subscription_id='sub_test_123',
        start_date=now - timedelta(days=10),
        end_date=now + timedelta(days=170),
    ))
    db.session.commit()
    return customer
