"""Shared pytest fixtures for the ShoeVerse API tests."""

from datetime import datetime

import mongomock
import pytest

from shoeverse import create_app
from shoeverse.auth import hash_password


@pytest.fixture
def app(tmp_path):
    app = create_app({
        'TESTING': True,
        'ENV_NAME': 'test',
        'MONGO_CLIENT': mongomock.MongoClient(),
        'MONGO_DB_NAME': 'shoeverse_test',
        'JWT_SECRET_KEY': 'test-secret-key-that-is-long-enough-for-hs256',
        'UPLOAD_FOLDER': str(tmp_path / 'uploads'),
        'BASE_URL': 'http://testserver',
    })
    return app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def db(app):
    return app.extensions['mongo']


def make_user(db, name, email, password, is_admin=False, **extra):
    doc = {
        'name': name,
        'email': email,
        'password': hash_password(password),
        'isAdmin': is_admin,
        'isActive': True,
        'lastLogin': None,
        'createdAt': datetime(2024, 1, 1),
        'updatedAt': datetime(2024, 1, 1),
        **extra,
    }
    doc['_id'] = db.users.insert_one(doc).inserted_id
    return doc


def login(client, email, password):
    resp = client.post('/api/auth/login', json={'email': email, 'password': password})
    assert resp.status_code == 200, resp.get_json()
    return resp.get_json()


def bearer(token):
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture
def admin_user(db):
    return make_user(db, 'Admin User', 'admin@shoeverse.com', 'admin123', is_admin=True)


@pytest.fixture
def customer(db):
    return make_user(db, 'John Doe', 'john@example.com', 'user123')


@pytest.fixture
def admin_headers(client, admin_user):
    return bearer(login(client, 'admin@shoeverse.com', 'admin123')['token'])


@pytest.fixture
def customer_headers(client, customer):
    return bearer(login(client, 'john@example.com', 'user123')['token'])


def make_product(db, **fields):
    doc = {
        'name': 'Nike Air Max 270',
        'brand': 'Nike',
        'category': 'Running',
        'description': 'Air cushioned runner.',
        'price': 60.0,
        'stock': 10,
        'images': [{'url': 'http://img/1.jpg', 'alt': '', 'isPrimary': True}],
        'sizes': [{'size': 9, 'quantity': 5}],
        'colors': ['Red'],
        'rating': 4.5,
        'numReviews': 10,
        'isFeatured': False,
        'createdAt': datetime(2024, 1, 1),
        'updatedAt': datetime(2024, 1, 1),
    }
    doc.update(fields)
    doc['_id'] = db.products.insert_one(doc).inserted_id
    return doc


@pytest.fixture
def shoe(db):
    return make_product(db)


@pytest.fixture
def boot(db):
    return make_product(
        db, name='Timberland Boot', brand='Timberland', category='Boots',
        price=150.0, stock=3, rating=4.0,
    )


@pytest.fixture
def address():
    return {
        'fullName': 'John Doe',
        'address': '221 Market St',
        'city': 'San Francisco',
        'state': 'CA',
        'zipCode': '94105',
        'country': 'USA',
    }
