"""
Authentication and role tests
"""
import pytest
import json
from datetime import datetime, timedelta, timezone
import jwt

from laundry.auth import generate_token, verify_token
from laundry.models import db
from laundry.roles import Role, effective_roles, has_role, parse_roles


class TestRoles:
    """Test role containment"""

    def test_admin_implies_everything(self):
        assert effective_roles({Role.ADMIN}) == frozenset(Role)
        for role in Role:
            assert has_role({Role.ADMIN}, role)

    def test_other_roles_imply_only_themselves(self):
        assert has_role({Role.DRIVER}, Role.DRIVER)
        assert not has_role({Role.DRIVER}, Role.LAUNDROMAT_STAFF)
        assert not has_role({Role.LAUNDROMAT_STAFF}, Role.ADMIN)
        assert not has_role({Role.CUSTOMER}, Role.DRIVER)

    def test_any_of_required(self):
        assert has_role({Role.DRIVER}, (Role.LAUNDROMAT_STAFF, Role.DRIVER))
        assert has_role({Role.CUSTOMER}, ('customer',))
        assert not has_role(set(), Role.CUSTOMER)

    def test_parse_roles_ignores_unknown(self):
        assert parse_roles(['driver', 'wizard', None]) == frozenset({Role.DRIVER})
        assert parse_roles(None) == frozenset()


class TestTokens:
    """Test JWT bearer tokens"""

    def test_round_trip(self, app, customer_user):
        token = generate_token(customer_user.id)
        assert verify_token(token) == customer_user.id

    def test_expired(self, app, customer_user):
        token = jwt.encode({
            'user_id': customer_user.id,
            'exp': datetime.now(timezone.utc) - timedelta(minutes=1)
        }, app.config['JWT_SECRET'], algorithm='HS256')
        assert verify_token(token) is None

    def test_wrong_secret(self, app, customer_user):
        token = jwt.encode({'user_id': customer_user.id}, 'someone-elses-secret', algorithm='HS256')
        assert verify_token(token) is None

    def test_garbage(self, app):
        assert verify_token('not.a.token') is None
        assert verify_token(None) is None


class TestProtectedEndpoints:
    """Test authentication on the API"""

    def test_missing_token(self, client, per_pound_order):
        response = client.get(f'/api/orders/{per_pound_order.id}')
        assert response.status_code == 401
        assert json.loads(response.data)['success'] is False

    def test_malformed_header(self, client, per_pound_order):
        response = client.get(f'/api/orders/{per_pound_order.id}', headers={'Authorization': 'Token abc'})
        assert response.status_code == 401

    def test_inactive_user(self, client, auth_headers, customer_user, per_pound_order):
        customer_user.is_active = False
        db.session.commit()
        response = client.get(f'/api/orders/{per_pound_order.id}', headers=auth_headers)
        assert response.status_code == 401

    def test_roles_read_from_database(self, client, auth_headers, customer_user, per_pound_order):
        """Revoking a role takes effect without a new token"""
        customer_user.roles = []
        db.session.commit()
        response = client.post(f'/api/orders/{per_pound_order.id}/cancel', headers=auth_headers, json={})
        assert response.status_code == 200

        response = client.post('/api/create-order', headers=auth_headers, json={})
        assert response.status_code == 403

    def test_admin_passes_every_role_check(self, client, admin_headers, per_pound_order):
        response = client.get('/api/driver/tasks', headers=admin_headers)
        assert response.status_code == 200


class TestAppBasics:
    """Test health check, error shape and response headers"""

    def test_health(self, client):
        response = client.get('/health')
        assert response.status_code == 200
        assert json.loads(response.data)['status'] == 'healthy'

    def test_request_id_echoed(self, client):
        response = client.get('/health', headers={'X-Request-ID': 'req-123'})
        assert response.headers['X-Request-ID'] == 'req-123'

    def test_security_headers(self, client):
        response = client.get('/health')
        assert response.headers['X-Content-Type-Options'] == 'nosniff'
        assert response.headers['X-Frame-Options'] == 'DENY'

    def test_unknown_route_is_json(self, client):
        response = client.get('/api/nothing-here')
        assert response.status_code == 404
        assert json.loads(response.data)['success'] is False
