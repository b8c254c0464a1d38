"""
Stripe webhook tests (no signing secret configured, so payloads are trusted)
"""
import pytest
import json

from laundry.models import db, Customer, Membership, Order, WebhookEvent


def _event(event_id, event_type, obj):
    return {'id': event_id, 'type': event_type, 'data': {'object': obj}}


class TestPaymentEvents:
    """Test payment intent events updating orders"""

    def test_payment_failed(self, client, per_pound_order):
        event = _event('evt_1', 'payment_intent.payment_failed', {
            'id': per_pound_order.stripe_payment_intent_id,
            'last_payment_error': {'message': 'Your card was declined.'},
        })
        response = client.post('/api/webhooks/stripe', json=event)

        assert response.status_code == 200
        assert json.loads(response.data)['received'] is True
        assert db.session.get(Order, per_pound_order.id).payment_status == 'failed'
        assert WebhookEvent.query.filter_by(stripe_event_id='evt_1').one().status == 'processed'

    def test_amount_capturable_after_failure(self, client, per_pound_order):
        intent_id = per_pound_order.stripe_payment_intent_id
        client.post('/api/webhooks/stripe', json=_event('evt_1', 'payment_intent.payment_failed', {'id': intent_id}))
        client.post('/api/webhooks/stripe', json=_event(
            'evt_2', 'payment_intent.amount_capturable_updated', {'id': intent_id, 'amount_capturable': 3500}
        ))

        assert db.session.get(Order, per_pound_order.id).payment_status == 'authorized'

    def test_payment_succeeded_records_charge(self, client, per_pound_order):
        intent_id = per_pound_order.stripe_payment_intent_id
        client.post('/api/webhooks/stripe', json=_event(
            'evt_3', 'payment_intent.succeeded', {'id': intent_id, 'latest_charge': 'ch_live_123'}
        ))

        order = db.session.get(Order, per_pound_order.id)
        assert order.payment_status == 'paid'
        assert order.stripe_charge_id == 'ch_live_123'

    def test_duplicate_event_ignored(self, client, per_pound_order):
        event = _event('evt_dup', 'payment_intent.payment_failed', {'id': per_pound_order.stripe_payment_intent_id})
        client.post('/api/webhooks/stripe', json=event)

        # Payment recovered in between; the redelivered failure must not clobber it
        order = db.session.get(Order, per_pound_order.id)
        order.payment_status = 'authorized'
        db.session.commit()

        response = client.post('/api/webhooks/stripe', json=event)
        assert json.loads(response.data)['duplicate'] is True
        assert db.session.get(Order, per_pound_order.id).payment_status == 'authorized'
        assert WebhookEvent.query.filter_by(stripe_event_id='evt_dup').count() == 1

    def test_unhandled_event_type(self, client, app):
        response = client.post('/api/webhooks/stripe', json=_event('evt_x', 'charge.dispute.created', {}))

        assert response.status_code == 200
        assert WebhookEvent.query.filter_by(stripe_event_id='evt_x').one().status == 'ignored'

    def test_invalid_json(self, client, app):
        response = client.post('/api/webhooks/stripe', data='not json', content_type='application/json')
        assert response.status_code == 400

    def test_signature_required_when_secret_set(self, client, app):
        app.config['STRIPE_WEBHOOK_SECRET'] = 'whsec_test'
        # The in-memory gateway does not verify signatures; Stripe's does
        response = client.post('/api/webhooks/stripe', data='not json', content_type='application/json',
                               headers={'Stripe-Signature': 't=1,v1=bad'})
        assert response.status_code == 400


class TestMembershipEvents:
    """Test subscription events driving memberships"""

    @pytest.fixture
    def customer(self, app, customer_user):
        customer = Customer(auth_user_id=customer_user.id, full_name='Jamie Customer',
                            email='jamie@example.com', stripe_customer_id='cus_123')
        db.session.add(customer)
        db.session.commit()
        return customer

    def test_subscription_lifecycle(self, client, customer):
        client.post('/api/webhooks/stripe', json=_event(
            'evt_s1', 'customer.subscription.created', {'id': 'sub_abc', 'customer': 'cus_123'}
        ))
        membership = Membership.query.filter_by(stripe_subscription_id='sub_abc').one()
        assert membership.customer_id == customer.id
        assert membership.status == 'active'
        first_end = membership.end_date

        client.post('/api/webhooks/stripe', json=_event(
            'evt_s2', 'invoice.payment_succeeded', {'id': 'in_1', 'subscription': 'sub_abc'}
        ))
        membership = Membership.query.filter_by(stripe_subscription_id='sub_abc').one()
        assert membership.end_date > first_end

        client.post('/api/webhooks/stripe', json=_event(
            'evt_s3', 'customer.subscription.deleted', {'id': 'sub_abc'}
        ))
        assert Membership.query.filter_by(stripe_subscription_id='sub_abc').one().status == 'canceled'

    def test_customer_from_metadata(self, client, customer):
        client.post('/api/webhooks/stripe', json=_event(
            'evt_s4', 'customer.subscription.created',
            {'id': 'sub_meta', 'customer': 'cus_unknown', 'metadata': {'customer_id': customer.id}}
        ))
        assert Membership.query.filter_by(stripe_subscription_id='sub_meta').one().customer_id == customer.id

    def test_unknown_customer(self, client, app):
        response = client.post('/api/webhooks/stripe', json=_event(
            'evt_s5', 'customer.subscription.created', {'id': 'sub_nobody', 'customer': 'cus_nobody'}
        ))
        assert response.status_code == 200
        assert Membership.query.count() == 0
