"""
Seed the database with the demo catalogue and two accounts.

    flask --app app seed [--with-orders]
    python -m shoeverse.seed [--with-orders]

Drops users and products (and orders/carts when --with-orders is given).
"""

import random
from datetime import timedelta

import click
from flask.cli import with_appcontext

from .analytics import add_months
from .auth import hash_password
from .cart import add_line, calc_cart_totals
from .db import get_db, utcnow

ADMIN_EMAIL = 'admin@shoeverse.com'
ADMIN_PASSWORD = 'admin123'
USER_EMAIL = 'john@example.com'
USER_PASSWORD = 'user123'

UNSPLASH = 'https://images.unsplash.com/'

PRODUCTS = [
    {
        'name': 'Nike Air Max 270',
        'brand': 'Nike',
        'category': 'Running',
        'description': 'The Nike Air Max 270 delivers performance and style.',
        'price': 149.99,
        'stock': 45,
        'images': [{'url': UNSPLASH + 'photo-1542291026-7eec264c27ff', 'alt': 'Nike Air Max 270', 'isPrimary': True}],
        'sizes': [{'size': 9, 'quantity': 10}],
        'colors': ['Red', 'Black'],
        'rating': 4.5,
        'numReviews': 128,
        'isFeatured': True,
    },
    {
        'name': 'Adidas Ultraboost',
        'brand': 'Adidas',
        'category': 'Running',
        'description': 'Ultimate comfort and energy return.',
        'price': 179.99,
        'stock': 32,
        'images': [{'url': UNSPLASH + 'photo-1587563871167-1ee9c731aefb', 'alt': 'Adidas Ultraboost', 'isPrimary': True}],
        'sizes': [{'size': 9, 'quantity': 8}],
        'colors': ['Blue', 'Black'],
        'rating': 4.7,
        'numReviews': 95,
        'isFeatured': True,
    },
    {
        'name': 'Converse Chuck Taylor All Star',
        'brand': 'Converse',
        'category': 'Sneakers',
        'description': 'The canvas high-top that never goes out of style.',
        'price': 59.99,
        'originalPrice': 65.0,
        'stock': 80,
        'images': [],
        'sizes': [{'size': 8, 'quantity': 20}, {'size': 10, 'quantity': 20}],
        'colors': ['White', 'Black'],
        'rating': 4.6,
        'numReviews': 310,
        'isFeatured': False,
    },
    {
        'name': 'Timberland 6-Inch Premium Boot',
        'brand': 'Timberland',
        'category': 'Boots',
        'description': 'Waterproof nubuck leather built for the outdoors.',
        'price': 198.0,
        'stock': 12,
        'images': [],
        'sizes': [{'size': 10, 'quantity': 6}],
        'colors': ['Wheat'],
        'rating': 4.4,
        'numReviews': 77,
        'isFeatured': True,
    },
    {
        'name': 'Clarks Tilden Cap Oxford',
        'brand': 'Clarks',
        'category': 'Formal',
        'description': 'Smooth leather oxford for the office and beyond.',
        'price': 89.95,
        'stock': 7,
        'images': [],
        'sizes': [{'size': 9.5, 'quantity': 3}],
        'colors': ['Black', 'Brown'],
        'rating': 4.1,
        'numReviews': 41,
        'isFeatured': False,
    },
    {
        'name': 'Puma Suede Classic',
        'brand': 'Puma',
        'category': 'Casual',
        'description': 'Soft suede upper and the iconic formstrip.',
        'price': 70.0,
        'stock': 25,
        'images': [],
        'sizes': [{'size': 9, 'quantity': 10}],
        'colors': ['Red', 'Navy'],
        'rating': 4.3,
        'numReviews': 64,
        'isFeatured': False,
    },
    {
        'name': 'Under Armour HOVR Phantom',
        'brand': 'Under Armour',
        'category': 'Sports',
        'description': 'Responsive cushioning for training days.',
        'price': 139.99,
        'stock': 5,
        'images': [],
        'sizes': [{'size': 11, 'quantity': 5}],
        'colors': ['Grey'],
        'rating': 4.0,
        'numReviews': 22,
        'isFeatured': False,
    },
]

PAYMENT_METHODS = ['Cash on Delivery', 'Credit Card', 'PayPal']
DEMO_ADDRESS = {
    'fullName': 'John Doe',
    'address': '221 Market St',
    'city': 'San Francisco',
    'state': 'CA',
    'zipCode': '94105',
    'country': 'USA',
}


def make_user(name, email, password, is_admin, now):
    return {
        'name': name,
        'email': email,
        'password': hash_password(password),
        'phone': '',
        'isAdmin': is_admin,
        'isActive': True,
        'lastLogin': None,
        'createdAt': now,
        'updatedAt': now,
    }


def demo_orders(user_id, products, now, months=6, per_month=4, rng=None):
    """delivered orders spread over the last few months, for the dashboard"""
    rng = rng or random.Random(42)
    orders = []
    for m in range(months):
        month_start = add_months(now, -m).replace(day=1)
        for n in range(per_month):
            created = month_start + timedelta(days=rng.randint(0, 25), hours=rng.randint(0, 23))
            if created > now:
                created = now - timedelta(hours=n + 1)
            items = []
            for product in rng.sample(products, 2):
                add_line(items, product, rng.randint(1, 2))
            totals = calc_cart_totals(items)
            orders.append({
                'orderNumber': f"SV-{created.strftime('%Y%m%d')}-SEED{m:02d}{n}",
                'user': user_id,
                'orderItems': [
                    {k: i[k] for k in ['product', 'name', 'image', 'price', 'quantity', 'size', 'color']}
                    for i in items
                ],
                'shippingAddress': DEMO_ADDRESS,
                'paymentMethod': rng.choice(PAYMENT_METHODS),
                'couponCode': None,
                'itemsPrice': totals['itemsPrice'],
                'taxPrice': totals['taxPrice'],
                'shippingPrice': totals['shippingPrice'],
                'discountPrice': 0.0,
                'totalPrice': totals['totalPrice'],
                'isPaid': True,
                'paidAt': created,
                'isDelivered': True,
                'deliveredAt': created + timedelta(days=3),
                'orderStatus': 'Delivered',
                'createdAt': created,
                'updatedAt': created,
            })
    return orders


def seed_database(db, with_orders=False, now=None, echo=print):
    now = now or utcnow()

    db.users.drop()
    db.products.drop()
    if with_orders:
        db.orders.drop()
        db.carts.drop()
    echo('Cleared existing data')

    db.users.create_index('email', unique=True)
    db.users.insert_one(make_user('Admin User', ADMIN_EMAIL, ADMIN_PASSWORD, True, now))
    echo(f'Admin created: {ADMIN_EMAIL}')
    user_id = db.users.insert_one(make_user('John Doe', USER_EMAIL, USER_PASSWORD, False, now)).inserted_id
    echo(f'User created: {USER_EMAIL}')

    docs = [{**p, 'createdAt': now, 'updatedAt': now} for p in PRODUCTS]
    db.products.insert_many(docs)
    echo(f'{len(docs)} products created')

    summary = {'users': 2, 'products': len(docs), 'orders': 0}
    if with_orders:
        orders = demo_orders(user_id, docs, now)
        db.orders.insert_many(orders)
        summary['orders'] = len(orders)
        echo(f'{len(orders)} delivered orders created')

    echo('')
    echo('=== LOGIN CREDENTIALS ===')
    echo(f'Admin: {ADMIN_EMAIL} / {ADMIN_PASSWORD}')
    echo(f'User: {USER_EMAIL} / {USER_PASSWORD}')
    return summary


@click.command('seed')
@click.option('--with-orders', is_flag=True, help='Also generate delivered demo orders.')
@with_appcontext
def seed_command(with_orders):
    """Reset users and products to the demo data."""
    seed_database(get_db(), with_orders=with_orders, echo=click.echo)


@click.command()
@click.option('--with-orders', is_flag=True, help='Also generate delivered demo orders.')
def main(with_orders):
    """Seed the database named by MONGO_URI."""
    from . import create_app

    app = create_app()
    with app.app_context():
        seed_database(get_db(), with_orders=with_orders, echo=click.echo)


if __name__ == '__main__':
    main()
