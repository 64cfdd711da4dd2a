from datetime import datetime, timedelta

import mongomock
import pytest
from pymongo.errors import DuplicateKeyError

from conftest import make_user
from shoeverse.db import utcnow


def make_order(db, user, product, quantity=1, status='Delivered', created=None, method='Cash on Delivery'):
    total = round(product['price'] * quantity * 1.1, 2)
    doc = {
        'orderNumber': f'SV-TEST-{db.orders.count_documents({}):04d}',
        'user': user['_id'],
        'orderItems': [{
            'product': product['_id'], 'name': product['name'], 'image': None,
            'price': product['price'], 'quantity': quantity, 'size': None, 'color': None,
        }],
        'paymentMethod': method,
        'totalPrice': total,
        'orderStatus': status,
        'createdAt': created or utcnow() - timedelta(minutes=5),
    }
    doc['_id'] = db.orders.insert_one(doc).inserted_id
    return doc


def data(resp):
    body = resp.get_json()
    assert body['success'] is True, body
    return body['data']


@pytest.fixture
def history(db, customer, shoe, boot):
    return [
        make_order(db, customer, shoe, 2),
        make_order(db, customer, boot, 1, method='PayPal'),
        make_order(db, customer, shoe, 1, status='Processing'),
        make_order(db, customer, boot, 1, status='Cancelled'),
    ]


class TestDashboard:

    def test_requires_admin(self, client, customer_headers):
        assert client.get('/api/admin/dashboard-stats', headers=customer_headers).status_code == 403

    def test_counts_and_revenue(self, client, admin_headers, history):
        stats = data(client.get('/api/admin/dashboard-stats', headers=admin_headers))
        assert stats['overview']['totalOrders'] == 4
        assert stats['overview']['totalProducts'] == 2
        assert stats['overview']['totalUsers'] == 2
        # delivered only: 132 + 165
        assert stats['overview']['totalRevenue'] == 297.0
        assert stats['orders']['processing'] == 1
        assert stats['orders']['cancelled'] == 1
        assert stats['orders']['delivered'] == 2
        assert stats['products']['lowStock'] == 1
        assert [p['name'] for p in stats['lowStockProducts']] == ['Timberland Boot']
        assert len(stats['recentOrders']) == 4
        assert stats['recentOrders'][0]['user']['email'] == 'john@example.com'
        assert stats['topProducts'][0]['product']['name'] == 'Nike Air Max 270'


class TestUsers:

    def test_list_with_order_stats(self, client, admin_headers, history):
        body = data(client.get('/api/admin/users?role=user', headers=admin_headers))
        assert body['pagination']['total'] == 1
        john = body['users'][0]
        assert 'password' not in john
        assert john['orderCount'] == 4
        assert john['totalSpent'] == 297.0
        assert john['lastOrderDate']

    def test_search_and_status(self, client, admin_headers, customer, db):
        make_user(db, 'Blocked Bob', 'bob@example.com', 'secret1', isActive=False)
        found = data(client.get('/api/admin/users?search=BOB', headers=admin_headers))['users']
        assert [u['email'] for u in found] == ['bob@example.com']
        inactive = data(client.get('/api/admin/users?status=inactive', headers=admin_headers))['users']
        assert [u['email'] for u in inactive] == ['bob@example.com']

    def test_pagination(self, client, admin_headers, db):
        for i in range(5):
            make_user(db, f'User {i}', f'user{i}@example.com', 'secret1')
        body = data(client.get('/api/admin/users?limit=2&page=3', headers=admin_headers))
        assert body['pagination'] == {'page': 3, 'limit': 2, 'total': 6, 'pages': 3}
        assert len(body['users']) == 2

    def test_export(self, client, admin_headers, customer):
        rows = data(client.get('/api/admin/users/export', headers=admin_headers))
        john = next(r for r in rows if r['Email'] == 'john@example.com')
        assert john['Role'] == 'User'
        assert john['Status'] == 'Active'
        assert john['Join Date'] == '2024-01-01'
        assert john['Last Login'] == 'Never'

    def test_details_and_activity(self, client, admin_headers, customer, history):
        uid = str(customer['_id'])
        details = data(client.get(f'/api/admin/users/{uid}', headers=admin_headers))
        assert details['stats']['totalOrders'] == 4
        assert len(details['orders']) == 4
        activity = data(client.get(f'/api/admin/users/{uid}/activity?limit=2', headers=admin_headers))
        assert len(activity['activity']['recentOrders']) == 2

    def test_unknown_user(self, client, admin_headers):
        assert client.get('/api/admin/users/507f1f77bcf86cd799439011', headers=admin_headers).status_code == 404

    def test_update_user(self, client, admin_headers, customer, db):
        resp = client.put(f"/api/admin/users/{customer['_id']}", headers=admin_headers,
                          json={'name': 'John Q', 'isAdmin': True})
        assert data(resp)['isAdmin'] is True
        assert db.users.find_one({'_id': customer['_id']})['name'] == 'John Q'

    def test_cannot_demote_self(self, client, admin_headers, admin_user):
        resp = client.put(f"/api/admin/users/{admin_user['_id']}", headers=admin_headers, json={'isAdmin': False})
        assert resp.status_code == 400

    def test_cannot_delete_self(self, client, admin_headers, admin_user):
        assert client.delete(f"/api/admin/users/{admin_user['_id']}", headers=admin_headers).status_code == 400

    def test_delete_without_orders(self, client, admin_headers, customer, db):
        assert client.delete(f"/api/admin/users/{customer['_id']}", headers=admin_headers).status_code == 200
        assert db.users.find_one({'_id': customer['_id']}) is None

    def test_delete_with_orders_deactivates(self, client, admin_headers, customer, history, db):
        client.delete(f"/api/admin/users/{customer['_id']}", headers=admin_headers)
        assert db.users.find_one({'_id': customer['_id']})['isActive'] is False

    def test_toggle_block(self, client, admin_headers, customer, customer_headers):
        url = f"/api/admin/users/{customer['_id']}/toggle-block"
        assert data(client.patch(url, headers=admin_headers))['isActive'] is False
        assert client.get('/api/auth/profile', headers=customer_headers).status_code == 403
        assert data(client.patch(url, headers=admin_headers))['isActive'] is True


class TestRevenue:

    def test_summary(self, client, admin_headers, history):
        summary = data(client.get('/api/admin/revenue/summary', headers=admin_headers))
        assert summary['total'] == 297.0
        assert summary['orders'] == 2
        assert summary['averageOrderValue'] == 148.5

    def test_range(self, client, admin_headers, db, customer, shoe):
        make_order(db, customer, shoe, created=datetime(2024, 1, 10))
        make_order(db, customer, shoe, created=datetime(2024, 2, 10))
        body = data(client.get('/api/admin/revenue/range?startDate=2024-01-01&endDate=2024-01-31',
                               headers=admin_headers))
        assert body == {'total': 66.0, 'orders': 1}
        assert client.get('/api/admin/revenue/range?startDate=yesterday', headers=admin_headers).status_code == 400

    def test_products_and_categories(self, client, admin_headers, history):
        products = data(client.get('/api/admin/revenue/products', headers=admin_headers))
        assert [p['product']['name'] for p in products] == ['Timberland Boot', 'Nike Air Max 270']
        categories = data(client.get('/api/admin/revenue/categories', headers=admin_headers))
        assert {c['_id'] for c in categories} == {'Running', 'Boots'}

    def test_payment_methods_and_customers(self, client, admin_headers, history):
        methods = data(client.get('/api/admin/revenue/payment-methods', headers=admin_headers))
        assert {m['_id']: m['orders'] for m in methods} == {'Cash on Delivery': 1, 'PayPal': 1}
        customers = data(client.get('/api/admin/revenue/customers', headers=admin_headers))
        assert customers[0]['email'] == 'john@example.com'
        assert customers[0]['revenue'] == 297.0

    def test_yearly_and_realtime(self, client, admin_headers, history):
        yearly = data(client.get('/api/admin/revenue/yearly', headers=admin_headers))
        assert yearly[0]['revenue'] == 297.0
        realtime = data(client.get('/api/admin/revenue/realtime', headers=admin_headers))
        assert realtime['lastHour'] == {'total': 297.0, 'orders': 2}

    def test_forecast_months_are_clamped(self, client, admin_headers, history):
        body = data(client.get('/api/admin/revenue/forecast?months=99', headers=admin_headers))
        assert len(body['forecast']) == 24
        body = data(client.get('/api/admin/revenue/forecast?months=0', headers=admin_headers))
        assert len(body['forecast']) == 3


class TestUserEmailEdits:

    def test_invalid_email_rejected(self, client, admin_headers, customer, db):
        resp = client.put(f"/api/admin/users/{customer['_id']}", headers=admin_headers, json={'email': 'not-an-email'})
        assert resp.status_code == 400
        assert db.users.find_one({'_id': customer['_id']})['email'] == 'john@example.com'

    def test_email_is_normalised(self, client, admin_headers, customer):
        resp = client.put(f"/api/admin/users/{customer['_id']}", headers=admin_headers,
                          json={'email': '  John.Doe@Example.COM '})
        assert data(resp)['email'] == 'john.doe@example.com'

    def test_duplicate_at_write_time(self, client, admin_headers, customer, monkeypatch):
        def duplicate(*args, **kwargs):
            raise DuplicateKeyError('E11000 duplicate key error')

        monkeypatch.setattr(mongomock.Collection, 'update_one', duplicate)
        resp = client.put(f"/api/admin/users/{customer['_id']}", headers=admin_headers, json={'email': 'new@example.com'})
        assert resp.status_code == 400


def test_range_end_date_covers_the_whole_day(client, admin_headers, db, customer, shoe):
    make_order(db, customer, shoe, created=datetime(2024, 1, 31, 15, 30))
    make_order(db, customer, shoe, created=datetime(2024, 2, 1, 0, 0, 1))
    body = data(client.get('/api/admin/revenue/range?startDate=2024-01-31&endDate=2024-01-31',
                           headers=admin_headers))
    assert body == {'total': 66.0, 'orders': 1}
