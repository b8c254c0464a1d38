"""
Order placement, lookup and cancellation tests
"""
import pytest
import json
from datetime import date, datetime, timedelta, timezone

from laundry.errors import PaymentProcessorError
from laundry.models import db, Customer, Membership, Order, Notification, Refund, OrderStatusHistory
from laundry.services import orders as order_service
from laundry.services import pricing
from laundry.services.order_status import apply_transition


class TestCreateOrder:
    """Test placing orders through the API"""

    def test_create_per_pound_order(self, client, auth_headers, order_data, laundromat):
        """Non-member, default 15 lb estimate: the minimum order applies"""
        response = client.post('/api/create-order', headers=auth_headers, json=order_data)

        assert response.status_code == 201
        data = json.loads(response.data)
        assert data['success'] is True
        assert data['totalCents'] == 3500
        assert data['paymentIntentId'].startswith('pi_dev_')
        assert data['clientSecret']
        assert data['laundromat'] == 'Midtown Suds'

        order = db.session.get(Order, data['orderId'])
        assert order.status == 'scheduled'
        assert order.pricing_model == 'per_lb'
        assert order.payment_status == 'authorized'
        assert order.estimated_weight_lb == 15
        assert order.minimum_order_applied is True
        assert order.member_rate_applied is False
        assert order.weight_adjustment == 'not_measured'
        assert order.assigned_laundromat_id == laundromat.id

    def test_estimate_matches_pricing_engine(self):
        """15 lb at the standard rate is under the minimum"""
        price = pricing.compute_per_pound_price(15)
        assert price.subtotal == 3375
        assert price.total == 3500
        assert price.minimum_applied is True

    def test_member_estimate(self, client, auth_headers, order_data, member):
        order_data['estimatedWeightLb'] = 30
        response = client.post('/api/create-order', headers=auth_headers, json=order_data)

        assert response.status_code == 201
        data = json.loads(response.data)
        assert data['totalCents'] == 5250
        order = db.session.get(Order, data['orderId'])
        assert order.member_rate_applied is True
        assert order.unit_rate_cents == 175

    def test_create_bag_order_charges_up_front(self, client, auth_headers, order_data, gateway, member):
        order_data['orderType'] = 'medium_bag'
        order_data['addons'] = [{'name': 'Hang dry', 'price': 500}]
        response = client.post('/api/create-order', headers=auth_headers, json=order_data)

        assert response.status_code == 201
        data = json.loads(response.data)
        assert data['totalCents'] == 6000

        order = db.session.get(Order, data['orderId'])
        assert order.pricing_model == 'bag_medium'
        assert order.payment_status == 'paid'
        assert order.stripe_charge_id.startswith('ch_dev_')
        assert order.estimated_weight_lb is None
        assert gateway.intents[order.stripe_payment_intent_id]['amount_received'] == 6000

    def test_bag_order_requires_membership(self, client, auth_headers, order_data, gateway):
        order_data['orderType'] = 'small_bag'
        response = client.post('/api/create-order', headers=auth_headers, json=order_data)

        assert response.status_code == 403
        assert 'members' in json.loads(response.data)['error']
        assert Order.query.count() == 0
        assert Customer.query.count() == 0
        assert gateway.intents == {}

    def test_expired_membership_cannot_book_bags(self, client, auth_headers, order_data, member):
        membership = Membership.query.filter_by(customer_id=member.id).one()
        membership.end_date = datetime.now(timezone.utc) - timedelta(days=1)
        db.session.commit()

        order_data['orderType'] = 'large_bag'
        response = client.post('/api/create-order', headers=auth_headers, json=order_data)
        assert response.status_code == 403
        assert Order.query.count() == 0

    def test_payment_failure_marks_order_failed(self, customer_user, laundromat, order_data,
                                                gateway, monkeypatch):
        def unavailable(**kwargs):
            raise PaymentProcessorError('Processor unavailable')
        monkeypatch.setattr(gateway, 'create_intent', unavailable)

        with pytest.raises(PaymentProcessorError):
            order_service.create_order(order_data, customer_user.id)

        order = Order.query.one()
        assert order.payment_status == 'failed'
        assert order.stripe_payment_intent_id is None
        assert gateway.intents == {}

    def test_time_window_by_id(self, client, auth_headers, order_data, time_window):
        order_data['pickupTimeWindowId'] = time_window.id
        response = client.post('/api/create-order', headers=auth_headers, json=order_data)
        assert response.status_code == 201

    def test_unknown_time_window_lists_labels(self, client, auth_headers, order_data):
        order_data['pickupTimeWindowId'] = 'midnight'
        response = client.post('/api/create-order', headers=auth_headers, json=order_data)

        assert response.status_code == 400
        data = json.loads(response.data)
        assert data['validLabels'] == ['morning', 'evening']

    def test_past_pickup_date_rejected(self, client, auth_headers, order_data):
        order_data['pickupDate'] = (date.today() - timedelta(days=3)).isoformat()
        response = client.post('/api/create-order', headers=auth_headers, json=order_data)
        assert response.status_code == 400

    @pytest.mark.parametrize('field,value', [
        ('customerName', ''),
        ('customerEmail', 'not-an-email'),
        ('orderType', 'tiny_bag'),
        ('pickupDate', 'next tuesday'),
        ('estimatedWeightLb', -4),
        ('addons', [{'name': 'Starch', 'price': -100}]),
    ])
    def test_invalid_fields_rejected(self, client, auth_headers, order_data, field, value):
        order_data[field] = value
        response = client.post('/api/create-order', headers=auth_headers, json=order_data)

        assert response.status_code == 400
        assert json.loads(response.data)['success'] is False
        assert Order.query.count() == 0

    def test_invalid_pickup_address(self, client, auth_headers, order_data):
        order_data['pickupAddress'] = {'line1': '1 Main St', 'city': 'Detroit', 'state': 'MI', 'zip': 'ABCDE'}
        response = client.post('/api/create-order', headers=auth_headers, json=order_data)
        assert response.status_code == 400

    def test_requires_authentication(self, client, order_data):
        response = client.post('/api/create-order', json=order_data)
        assert response.status_code == 401

    def test_requires_customer_role(self, client, driver_headers, order_data):
        response = client.post('/api/create-order', headers=driver_headers, json=order_data)
        assert response.status_code == 403

    def test_no_laundromat_for_zip(self, client, auth_headers, order_data, laundromat):
        order_data['pickupAddress'] = dict(order_data['pickupAddress'], postal_code='90210')
        response = client.post('/api/create-order', headers=auth_headers, json=order_data)

        assert response.status_code == 201
        data = json.loads(response.data)
        assert data['laundromat'] is None
        assert db.session.get(Order, data['orderId']).assigned_laundromat_id is None

    def test_confirmation_emails_recorded(self, client, auth_headers, order_data):
        response = client.post('/api/create-order', headers=auth_headers, json=order_data)
        order_id = json.loads(response.data)['orderId']

        emails = {n.recipient: n for n in Notification.query.filter_by(order_id=order_id, channel='email')}
        assert emails['jamie@example.com'].event == 'order_confirmation'
        assert emails['ops@bagsoflaundry.test'].event == 'new_order_alert'
        # No provider configured in tests
        assert emails['jamie@example.com'].status == 'skipped'


class TestGetOrder:
    """Test order lookup"""

    def test_owner_sees_order_with_history(self, client, auth_headers, per_pound_order):
        apply_transition(per_pound_order.id, 'en_route_pickup')
        response = client.get(f'/api/orders/{per_pound_order.id}', headers=auth_headers)

        assert response.status_code == 200
        order = json.loads(response.data)['order']
        assert order['status'] == 'en_route_pickup'
        assert order['status_label'] == 'Driver on the way'
        assert order['valid_transitions'] == ['picked_up']
        assert order['pickup_time_window'] == 'morning'
        assert len(order['status_history']) == 1
        assert order['refunds'] == []

    def test_other_customer_gets_404(self, client, per_pound_order, user_factory, headers_for):
        stranger = user_factory('stranger@example.com', ['customer'])
        response = client.get(f'/api/orders/{per_pound_order.id}', headers=headers_for(stranger))
        assert response.status_code == 404

    def test_staff_can_view(self, client, staff_headers, per_pound_order):
        response = client.get(f'/api/orders/{per_pound_order.id}', headers=staff_headers)
        assert response.status_code == 200

    def test_missing_order(self, client, auth_headers):
        response = client.get('/api/orders/does-not-exist', headers=auth_headers)
        assert response.status_code == 404


class TestCancellationPolicy:
    """Test the refund a customer cancellation earns"""

    def _order(self, status='scheduled', total=5000):
        return Order(status=status, total_cents=total)

    def test_full_refund_six_hours_ahead(self):
        now = datetime(2026, 5, 1, 8, 0, tzinfo=timezone.utc)
        quote = order_service.cancellation_refund(self._order(), now + timedelta(hours=6), now)
        assert quote.amount_cents == 5000
        assert quote.percent == 100

    def test_late_cancellation_fee(self):
        now = datetime(2026, 5, 1, 8, 0, tzinfo=timezone.utc)
        quote = order_service.cancellation_refund(self._order(), now + timedelta(hours=3), now)
        assert quote.amount_cents == 4000
        assert quote.percent == 80

    def test_fee_never_goes_negative(self):
        now = datetime(2026, 5, 1, 8, 0, tzinfo=timezone.utc)
        quote = order_service.cancellation_refund(self._order(total=800), now + timedelta(hours=1), now)
        assert quote.amount_cents == 0

    def test_after_pickup_time_half(self):
        now = datetime(2026, 5, 1, 8, 0, tzinfo=timezone.utc)
        quote = order_service.cancellation_refund(self._order(), now - timedelta(minutes=5), now)
        assert quote.amount_cents == 2500
        assert quote.percent == 50

    def test_in_progress_half(self):
        now = datetime(2026, 5, 1, 8, 0, tzinfo=timezone.utc)
        quote = order_service.cancellation_refund(
            self._order(status='processing', total=5001), now + timedelta(days=2), now
        )
        assert quote.amount_cents == 2500


class TestCustomerCancellation:
    """Test customers canceling their own orders"""

    def test_quote(self, client, auth_headers, per_pound_order):
        response = client.get(f'/api/orders/{per_pound_order.id}/cancellation-quote', headers=auth_headers)

        assert response.status_code == 200
        data = json.loads(response.data)
        assert data['cancellable'] is True
        assert data['refundCents'] == 3500
        assert data['refundPercent'] == 100

    def test_cancel_releases_authorization(self, client, auth_headers, per_pound_order, gateway):
        response = client.post(f'/api/orders/{per_pound_order.id}/cancel',
            headers=auth_headers,
            json={'reason': 'Plans changed'}
        )

        assert response.status_code == 200
        data = json.loads(response.data)
        assert data['paymentAction'] == 'authorization_canceled'
        assert data['refundCents'] == 0

        order = db.session.get(Order, per_pound_order.id)
        assert order.status == 'canceled_by_customer'
        assert order.payment_status == 'canceled'
        assert order.cancellation_reason == 'Plans changed'
        assert order.canceled_at is not None
        assert gateway.intents[order.stripe_payment_intent_id]['status'] == 'canceled'

    def test_cancel_paid_bag_order_refunds(self, client, auth_headers, medium_bag_order):
        response = client.post(f'/api/orders/{medium_bag_order.id}/cancel', headers=auth_headers, json={})

        assert response.status_code == 200
        data = json.loads(response.data)
        assert data['paymentAction'] == 'refunded'
        assert data['refundCents'] == 5500

        order = db.session.get(Order, medium_bag_order.id)
        assert order.payment_status == 'refunded'
        assert order.refund_amount_cents == 5500
        refund = Refund.query.filter_by(order_id=order.id).one()
        assert refund.reason_internal == 'cancellation'

    def test_cannot_cancel_after_dispatch(self, client, auth_headers, per_pound_order):
        apply_transition(per_pound_order.id, 'en_route_pickup')
        response = client.post(f'/api/orders/{per_pound_order.id}/cancel', headers=auth_headers, json={})

        assert response.status_code == 400
        assert db.session.get(Order, per_pound_order.id).status == 'en_route_pickup'

    def test_cannot_cancel_someone_elses_order(self, client, per_pound_order, user_factory, headers_for):
        stranger = user_factory('stranger@example.com', ['customer'])
        response = client.post(f'/api/orders/{per_pound_order.id}/cancel', headers=headers_for(stranger), json={})
        assert response.status_code == 404


class TestOpsCancellation:
    """Test operations canceling orders"""

    def test_ops_cancel_in_progress_order(self, client, admin_headers, medium_bag_order):
        apply_transition(medium_bag_order.id, 'en_route_pickup')
        apply_transition(medium_bag_order.id, 'picked_up', extra_fields={'actual_weight': 30})

        response = client.post(f'/api/admin/orders/{medium_bag_order.id}/cancel',
            headers=admin_headers,
            json={'reason': 'Machine flooded'}
        )

        assert response.status_code == 200
        data = json.loads(response.data)
        assert data['refundCents'] == 5500
        assert data['order']['status'] == 'canceled_by_ops'

        history = OrderStatusHistory.query.filter_by(order_id=medium_bag_order.id, status='canceled_by_ops').one()
        assert history.override is True

    def test_ops_cancel_requires_reason(self, client, admin_headers, medium_bag_order):
        response = client.post(f'/api/admin/orders/{medium_bag_order.id}/cancel', headers=admin_headers, json={})
        assert response.status_code == 400

    def test_closed_order_cannot_be_canceled(self, client, admin_headers, per_pound_order):
        apply_transition(per_pound_order.id, 'canceled_by_customer')
        response = client.post(f'/api/admin/orders/{per_pound_order.id}/cancel',
            headers=admin_headers,
            json={'reason': 'Duplicate'}
        )
        assert response.status_code == 400
