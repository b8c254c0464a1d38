"""
Laundromat staff endpoint and routing tests
"""
import pytest
import json

from laundry.models import db, Order, Laundromat, LaundromatServiceArea, Notification
from laundry.services import routing


class TestRecordWeight:
    """Test weighing orders at the laundromat"""

    def test_per_pound_weight_quote(self, client, staff_headers, per_pound_order):
        response = client.post(f'/api/laundromat/orders/{per_pound_order.id}/weight',
            headers=staff_headers,
            json={'weight': 24}
        )

        assert response.status_code == 200
        data = json.loads(response.data)
        assert data['totalCents'] == 5400
        assert data['ratePerPound'] == 225
        assert data['minimumApplied'] is False

        order = db.session.get(Order, per_pound_order.id)
        assert order.measured_weight_lb == 24
        # Nothing charged until capture
        assert order.payment_status == 'authorized'

    def test_bag_weight_goes_through_adjustment(self, client, staff_headers, bag_order_factory):
        order = bag_order_factory(orderType='large_bag')
        response = client.post(f'/api/laundromat/orders/{order.id}/weight',
            headers=staff_headers,
            json={'weight': 55}
        )

        assert response.status_code == 200
        data = json.loads(response.data)
        assert data['overweight'] is True
        assert data['feeCents'] == 500
        assert data['totalCents'] == 9000

    def test_invalid_weight(self, client, staff_headers, per_pound_order):
        response = client.post(f'/api/laundromat/orders/{per_pound_order.id}/weight',
            headers=staff_headers,
            json={'weight': 'a lot'}
        )
        assert response.status_code == 400


class TestStaffStatus:
    """Test staff status updates"""

    def test_processing_flow(self, client, staff_headers, per_pound_order, driver_headers):
        client.post(f'/api/driver/orders/{per_pound_order.id}/start-route', headers=driver_headers, json={})
        client.post(f'/api/driver/orders/{per_pound_order.id}/pickup', headers=driver_headers,
                    json={'actualWeight': 15})

        for status in ('processing', 'ready_for_delivery'):
            response = client.post(f'/api/laundromat/orders/{per_pound_order.id}/status',
                headers=staff_headers,
                json={'status': status}
            )
            assert response.status_code == 200
        assert db.session.get(Order, per_pound_order.id).ready_for_delivery_at is not None

    def test_flag_issue(self, client, staff_headers, per_pound_order, admin_user):
        from laundry.services.order_status import apply_transition
        apply_transition(per_pound_order.id, 'processing', admin_user.id, skip_validation=True)

        response = client.post(f'/api/laundromat/orders/{per_pound_order.id}/status',
            headers=staff_headers,
            json={'status': 'issue_flagged', 'notes': 'Torn seam on jacket'}
        )

        assert response.status_code == 200
        order = db.session.get(Order, per_pound_order.id)
        assert order.status == 'issue_flagged'
        assert order.notes == 'Torn seam on jacket'

    def test_invalid_transition(self, client, staff_headers, per_pound_order):
        response = client.post(f'/api/laundromat/orders/{per_pound_order.id}/status',
            headers=staff_headers,
            json={'status': 'completed'}
        )
        assert response.status_code == 400

    def test_status_required(self, client, staff_headers, per_pound_order):
        response = client.post(f'/api/laundromat/orders/{per_pound_order.id}/status',
            headers=staff_headers,
            json={}
        )
        assert response.status_code == 400


class TestCustomerMessage:
    """Test staff texting customers"""

    def test_template_message(self, client, staff_headers, per_pound_order):
        response = client.post(f'/api/laundromat/orders/{per_pound_order.id}/message',
            headers=staff_headers,
            json={'messageType': 'pickup_reminder'}
        )

        assert response.status_code == 200
        data = json.loads(response.data)
        assert data['sentTo'] == '313-555-0142'
        assert 'Midtown Suds' in data['message']
        assert per_pound_order.short_id in data['message']

        sms = Notification.query.filter_by(order_id=per_pound_order.id, event='pickup_reminder').one()
        assert sms.recipient == '+13135550142'
        assert sms.payload['message'].endswith('Reply STOP to unsubscribe')

    def test_custom_message(self, client, staff_headers, per_pound_order):
        response = client.post(f'/api/laundromat/orders/{per_pound_order.id}/message',
            headers=staff_headers,
            json={'customMessage': 'Running 10 minutes late'}
        )
        assert response.status_code == 200
        assert json.loads(response.data)['messageType'] == 'custom'

    def test_unknown_template(self, client, staff_headers, per_pound_order):
        response = client.post(f'/api/laundromat/orders/{per_pound_order.id}/message',
            headers=staff_headers,
            json={'messageType': 'sing_a_song'}
        )

        assert response.status_code == 400
        assert 'weight_update' in json.loads(response.data)['availableTemplates']

    def test_requires_opt_in(self, client, staff_headers, order_factory):
        order = order_factory(smsOptIn=False)
        response = client.post(f'/api/laundromat/orders/{order.id}/message',
            headers=staff_headers,
            json={'messageType': 'pickup_reminder'}
        )
        assert response.status_code == 400

        # An explicit number overrides the opt-in check
        response = client.post(f'/api/laundromat/orders/{order.id}/message',
            headers=staff_headers,
            json={'messageType': 'pickup_reminder', 'phoneNumber': '+13135550199'}
        )
        assert response.status_code == 200


class TestRouting:
    """Test assigning orders to laundromats"""

    def test_find_by_zip_least_busy_first(self, app, laundromat):
        busy = Laundromat(name='Busy Bubbles', today_orders=10)
        full = Laundromat(name='Full Foam', today_orders=5, max_daily_orders=5)
        db.session.add_all([busy, full])
        db.session.flush()
        db.session.add_all([
            LaundromatServiceArea(laundromat_id=busy.id, zip_code='48201'),
            LaundromatServiceArea(laundromat_id=full.id, zip_code='48201'),
        ])
        db.session.commit()

        names = [l.name for l in routing.find_laundromats_by_zip('48201')]
        assert names == ['Midtown Suds', 'Busy Bubbles']
        assert routing.find_laundromats_by_zip('10001') == []

    def test_auto_assignment_counts_orders(self, per_pound_order, laundromat):
        assert per_pound_order.assigned_laundromat_id == laundromat.id
        assert per_pound_order.routing_method == 'zip_match'
        assert db.session.get(Laundromat, laundromat.id).today_orders == 1

    def test_manual_assignment_by_admin(self, client, admin_headers, per_pound_order):
        other = Laundromat(name='Corktown Clean')
        db.session.add(other)
        db.session.commit()

        response = client.post('/api/assign-laundromat',
            headers=admin_headers,
            json={'orderId': per_pound_order.id, 'laundromatId': other.id}
        )

        assert response.status_code == 200
        data = json.loads(response.data)
        assert data['routingMethod'] == 'manual'
        assert data['laundromat']['name'] == 'Corktown Clean'
        assert db.session.get(Order, per_pound_order.id).assigned_laundromat_id == other.id

    def test_staff_cannot_assign_elsewhere(self, client, staff_headers, per_pound_order):
        other = Laundromat(name='Corktown Clean')
        db.session.add(other)
        db.session.commit()

        response = client.post('/api/assign-laundromat',
            headers=staff_headers,
            json={'orderId': per_pound_order.id, 'laundromatId': other.id}
        )
        assert response.status_code == 403

    def test_zip_routing_without_match(self, client, admin_headers, per_pound_order):
        response = client.post('/api/assign-laundromat',
            headers=admin_headers,
            json={'orderId': per_pound_order.id, 'zipCode': '99501'}
        )
        assert response.status_code == 404
