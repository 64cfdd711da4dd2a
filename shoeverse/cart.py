"""
Cart arithmetic and the per-user cart.

The arithmetic works on plain lists of line dicts so orders can reuse it:

    {'product': <id>, 'name', 'image', 'price', 'quantity', 'size', 'color', 'stock'}

A line is identified by (product, size, color).
"""

import logging

from flask import Blueprint, g, jsonify, request

from .auth import protect
from .config import COUPONS, FREE_SHIPPING_OVER, SHIPPING_FLAT, TAX_RATE
from .db import get_db, parse_object_id, utcnow
from .errors import ApiError

logger = logging.getLogger(__name__)

bp = Blueprint('cart', __name__, url_prefix='/api/cart')


# ============== CALCULATIONS ==============

def line_key(product_id, size=None, color=None):
    return (str(product_id), size, color)


def find_line(items, product_id, size=None, color=None):
    key = line_key(product_id, size, color)
    for item in items:
        if line_key(item['product'], item.get('size'), item.get('color')) == key:
            return item
    return None


def primary_image(product):
    images = product.get('images') or []
    for img in images:
        if img.get('isPrimary'):
            return img.get('url')
    return images[0].get('url') if images else None


def make_line(product, quantity=1, size=None, color=None):
    return {
        'product': product['_id'],
        'name': product['name'],
        'image': primary_image(product),
        'price': float(product['price']),
        'quantity': int(quantity),
        'size': size,
        'color': color,
        'stock': int(product.get('stock', 0)),
    }


def add_line(items, product, quantity=1, size=None, color=None):
    """add to the cart, merging with an existing (product, size, color) line"""
    existing = find_line(items, product['_id'], size, color)
    if existing:
        existing['quantity'] += int(quantity)
        existing['price'] = float(product['price'])
        existing['stock'] = int(product.get('stock', 0))
        return items
    items.append(make_line(product, quantity, size, color))
    return items


def remove_line(items, product_id, size=None, color=None):
    key = line_key(product_id, size, color)
    return [
        i for i in items
        if line_key(i['product'], i.get('size'), i.get('color')) != key
    ]


def update_line(items, product_id, size, color, quantity):
    """set a line's quantity; anything under 1 drops the line"""
    if quantity < 1:
        return remove_line(items, product_id, size, color)
    line = find_line(items, product_id, size, color)
    if line:
        line['quantity'] = int(quantity)
    return items


def calc_subtotal(items):
    return sum(i['price'] * i['quantity'] for i in items)


def calc_item_count(items):
    return sum(i['quantity'] for i in items)


def calc_tax(subtotal):
    return subtotal * TAX_RATE


def calc_shipping(subtotal):
    # nothing to ship, nothing to charge
    if subtotal <= 0:
        return 0.0
    return 0.0 if subtotal > FREE_SHIPPING_OVER else SHIPPING_FLAT


def calc_discount(coupon_code, subtotal, shipping):
    """returns (discount, error)"""
    if not coupon_code:
        return 0.0, None
    coupon = COUPONS.get(str(coupon_code).strip().upper())
    if not coupon:
        return 0.0, 'Invalid coupon code'
    if coupon['type'] == 'percent':
        return subtotal * coupon['value'] / 100, None
    return shipping, None


def calc_cart_totals(items, coupon_code=None):
    """subtotal, tax, shipping, discount and grand total for a list of lines"""
    subtotal = calc_subtotal(items)
    tax = calc_tax(subtotal)
    shipping = calc_shipping(subtotal)
    discount, coupon_error = calc_discount(coupon_code, subtotal, shipping)

    result = {
        'itemCount': calc_item_count(items),
        'itemsPrice': round(subtotal, 2),
        'taxPrice': round(tax, 2),
        'shippingPrice': round(shipping, 2),
        'discountPrice': round(discount, 2),
        'totalPrice': round(subtotal + tax + shipping - discount, 2),
        'couponCode': str(coupon_code).strip().upper() if coupon_code and not coupon_error else None,
    }
    if coupon_error:
        result['couponError'] = coupon_error
    return result


# ============== PRICING FROM THE CATALOGUE ==============

def load_products(product_ids):
    ids = [parse_object_id(pid) for pid in product_ids]
    ids = [i for i in ids if i is not None]
    if not ids:
        return {}
    return {str(p['_id']): p for p in get_db().products.find({'_id': {'$in': ids}})}


def price_items(raw_items):
    """
    build priced lines from client input. prices, names and stock always
    come from the product documents. raises ApiError for unknown products,
    bad quantities or not enough stock.
    """
    if not isinstance(raw_items, list) or not all(isinstance(i, dict) for i in raw_items):
        raise ApiError('Items must be a list of {product, quantity}', 400)

    products = load_products([i.get('product') or i.get('_id') for i in raw_items])
    items = []
    for raw in raw_items:
        pid = str(raw.get('product') or raw.get('_id') or '')
        product = products.get(pid)
        if not product:
            raise ApiError(f'Product {pid} not found', 404)
        try:
            qty = int(raw.get('quantity', 1))
        except (TypeError, ValueError):
            raise ApiError('Quantity must be a number', 400)
        if qty < 1:
            raise ApiError('Quantity must be at least 1', 400)
        add_line(items, product, qty, raw.get('size'), raw.get('color'))

    for item in items:
        if item['quantity'] > item['stock']:
            raise ApiError(f"Insufficient stock for {item['name']}", 400)
    return items


def refresh_lines(items):
    """current price, name, image and stock for saved lines; deleted products drop out"""
    products = load_products([i['product'] for i in items])
    fresh = []
    for item in items:
        product = products.get(str(item['product']))
        if not product:
            continue
        fresh.append(make_line(product, item['quantity'], item.get('size'), item.get('color')))
    return fresh


# ============== PERSISTED CART ==============

def get_cart_items(user_id):
    """saved lines, repriced from the catalogue"""
    cart = get_db().carts.find_one({'user': user_id})
    return refresh_lines(cart.get('items', [])) if cart else []


def save_cart_items(user_id, items):
    get_db().carts.update_one(
        {'user': user_id},
        {'$set': {'items': items, 'updatedAt': utcnow()}, '$setOnInsert': {'user': user_id}},
        upsert=True,
    )


def clear_cart_items(user_id):
    get_db().carts.delete_one({'user': user_id})


def cart_response(items, coupon_code=None):
    return jsonify({'items': items, **calc_cart_totals(items, coupon_code)})


@bp.route('', methods=['GET'])
@protect
def get_cart():
    return cart_response(get_cart_items(g.user['_id']), request.args.get('coupon'))


@bp.route('/items', methods=['POST'])
@protect
def add_to_cart():
    data = request.get_json(silent=True) or {}
    product = None
    pid = parse_object_id(data.get('product'))
    if pid:
        product = get_db().products.find_one({'_id': pid})
    if not product:
        return jsonify({'message': 'Product not found'}), 404

    try:
        qty = int(data.get('quantity', 1))
    except (TypeError, ValueError):
        return jsonify({'message': 'Quantity must be a number'}), 400
    if qty < 1:
        return jsonify({'message': 'Quantity must be at least 1'}), 400

    size = data.get('size')
    color = data.get('color')
    items = get_cart_items(g.user['_id'])
    existing = find_line(items, pid, size, color)
    wanted = qty + (existing['quantity'] if existing else 0)
    if wanted > product.get('stock', 0):
        return jsonify({'message': f"Only {product.get('stock', 0)} left in stock"}), 400

    add_line(items, product, qty, size, color)
    save_cart_items(g.user['_id'], items)
    return cart_response(items)


@bp.route('/items', methods=['PUT'])
@protect
def update_cart_item():
    data = request.get_json(silent=True) or {}
    pid = data.get('product')
    try:
        qty = int(data.get('quantity', 0))
    except (TypeError, ValueError):
        return jsonify({'message': 'Quantity must be a number'}), 400

    items = get_cart_items(g.user['_id'])
    line = find_line(items, pid, data.get('size'), data.get('color'))
    if not line:
        return jsonify({'message': 'Item not in cart'}), 404
    if qty > line.get('stock', 0):
        return jsonify({'message': f"Only {line.get('stock', 0)} left in stock"}), 400

    items = update_line(items, pid, data.get('size'), data.get('color'), qty)
    save_cart_items(g.user['_id'], items)
    return cart_response(items)


@bp.route('/items', methods=['DELETE'])
@protect
def remove_from_cart():
    data = request.get_json(silent=True) or {}
    items = remove_line(
        get_cart_items(g.user['_id']),
        data.get('product'), data.get('size'), data.get('color'),
    )
    save_cart_items(g.user['_id'], items)
    return cart_response(items)


@bp.route('', methods=['DELETE'])
@protect
def clear_cart():
    clear_cart_items(g.user['_id'])
    return cart_response([])


@bp.route('/quote', methods=['POST'])
@protect
def quote():
    """price arbitrary items (or the saved cart) without saving anything"""
    data = request.get_json(silent=True) or {}
    raw_items = data.get('items')
    if raw_items:
        items = price_items(raw_items)
    else:
        items = get_cart_items(g.user['_id'])
    return cart_response(items, data.get('couponCode'))
