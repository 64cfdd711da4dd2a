from datetime import datetime

import pytest

from conftest import make_product


@pytest.fixture
def catalogue(db):
    return [
        make_product(db, name='Nike Pegasus', brand='Nike', price=120.0, rating=4.8,
                     createdAt=datetime(2024, 1, 1)),
        make_product(db, name='Nike Court', brand='Nike', category='Casual', price=80.0, rating=4.1,
                     createdAt=datetime(2024, 3, 1)),
        make_product(db, name='Adidas Samba', brand='Adidas', category='Sneakers', price=100.0, rating=4.5,
                     isFeatured=True, createdAt=datetime(2024, 2, 1)),
    ]


def names(resp):
    return [p['name'] for p in resp.get_json()['products']]


class TestListing:

    def test_default_sort_is_popularity(self, client, catalogue):
        resp = client.get('/api/products')
        assert resp.status_code == 200
        assert names(resp) == ['Nike Pegasus', 'Adidas Samba', 'Nike Court']
        body = resp.get_json()
        assert body['page'] == 1 and body['pages'] == 1 and body['total'] == 3

    def test_keyword_is_case_insensitive(self, client, catalogue):
        assert names(client.get('/api/products?keyword=nIKe')) == ['Nike Pegasus', 'Nike Court']

    def test_category_filters_brand(self, client, catalogue):
        assert names(client.get('/api/products?category=Adidas')) == ['Adidas Samba']

    def test_price_range(self, client, catalogue):
        assert names(client.get('/api/products?price=90-120&sort=price-low')) == ['Adidas Samba', 'Nike Pegasus']

    def test_bad_price_range(self, client, catalogue):
        assert client.get('/api/products?price=cheap-expensive').status_code == 400

    def test_sorts(self, client, catalogue):
        assert names(client.get('/api/products?sort=price-high'))[0] == 'Nike Pegasus'
        assert names(client.get('/api/products?sort=newest'))[0] == 'Nike Court'

    def test_pagination(self, client, db):
        for i in range(14):
            make_product(db, name=f'Shoe {i:02d}', rating=i)
        first = client.get('/api/products').get_json()
        second = client.get('/api/products?page=2').get_json()
        assert first['pages'] == 2 and first['total'] == 14
        assert len(first['products']) == 12
        assert len(second['products']) == 2


class TestLookups:

    def test_featured(self, client, catalogue):
        assert [p['name'] for p in client.get('/api/products/featured').get_json()] == ['Adidas Samba']

    def test_featured_falls_back(self, client, db):
        for i in range(6):
            make_product(db, name=f'Plain {i}')
        assert len(client.get('/api/products/featured').get_json()) == 4

    def test_categories_and_brands(self, client, catalogue):
        assert client.get('/api/products/categories').get_json() == ['Casual', 'Running', 'Sneakers']
        assert client.get('/api/products/brands').get_json() == ['Adidas', 'Nike']

    def test_get_one(self, client, shoe):
        body = client.get(f"/api/products/{shoe['_id']}").get_json()
        assert body['_id'] == str(shoe['_id'])
        assert body['createdAt'].startswith('2024-01-01')

    def test_missing_and_malformed_ids(self, client):
        assert client.get('/api/products/507f1f77bcf86cd799439011').status_code == 404
        assert client.get('/api/products/garbage').status_code == 404


NEW_SHOE = {
    'name': 'Hoka Clifton',
    'brand': 'Hoka',
    'category': 'Running',
    'description': 'Max cushion.',
    'price': 140,
    'stock': 20,
    'sizes': [{'size': 9, 'quantity': 4}, {'size': 9.5, 'quantity': 2}],
    'images': ['http://img/hoka.jpg'],
}


class TestAdmin:

    def test_customers_cannot_create(self, client, customer_headers):
        assert client.post('/api/products', headers=customer_headers, json=NEW_SHOE).status_code == 403

    def test_create(self, client, admin_headers):
        resp = client.post('/api/products', headers=admin_headers, json=NEW_SHOE)
        assert resp.status_code == 201
        body = resp.get_json()
        assert body['price'] == 140.0
        assert body['rating'] == 0
        assert body['isFeatured'] is False
        assert body['sizes'] == [{'size': 9, 'quantity': 4}, {'size': 9.5, 'quantity': 2}]
        assert body['images'] == [{'url': 'http://img/hoka.jpg', 'alt': '', 'isPrimary': True}]

    def test_create_validation(self, client, admin_headers):
        missing = {k: v for k, v in NEW_SHOE.items() if k != 'brand'}
        assert client.post('/api/products', headers=admin_headers, json=missing).status_code == 400
        bad_cat = {**NEW_SHOE, 'category': 'Slippers'}
        assert client.post('/api/products', headers=admin_headers, json=bad_cat).status_code == 400
        negative = {**NEW_SHOE, 'price': -1}
        assert client.post('/api/products', headers=admin_headers, json=negative).status_code == 400

    def test_update_keeps_unspecified_fields(self, client, admin_headers, shoe):
        resp = client.put(f"/api/products/{shoe['_id']}", headers=admin_headers,
                          json={'price': 75, 'isFeatured': True, 'stock': 0})
        body = resp.get_json()
        assert body['price'] == 75.0
        assert body['stock'] == 0
        assert body['isFeatured'] is True
        assert body['name'] == shoe['name']

    def test_delete(self, client, admin_headers, shoe):
        assert client.delete(f"/api/products/{shoe['_id']}", headers=admin_headers).status_code == 200
        assert client.get(f"/api/products/{shoe['_id']}").status_code == 404

    def test_stock_adjustments(self, client, admin_headers, shoe):
        url = f"/api/products/{shoe['_id']}/stock"
        assert client.patch(url, headers=admin_headers, json={'adjust': -4}).get_json()['stock'] == 6
        assert client.patch(url, headers=admin_headers, json={'adjust': -7}).status_code == 400
        assert client.patch(url, headers=admin_headers, json={'stock': 30}).get_json()['stock'] == 30
        assert client.patch(url, headers=admin_headers, json={}).status_code == 400

    def test_low_stock(self, client, admin_headers, shoe, boot):
        body = client.get('/api/products/low-stock', headers=admin_headers).get_json()
        assert [p['name'] for p in body] == ['Timberland Boot']
        body = client.get('/api/products/low-stock?threshold=11', headers=admin_headers).get_json()
        assert [p['name'] for p in body] == ['Timberland Boot', 'Nike Air Max 270']
