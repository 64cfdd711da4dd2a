import logging
import uuid

from flask import Blueprint, g, jsonify, request

from .auth import admin, protect
from .cart import calc_cart_totals, clear_cart_items, get_cart_items, price_items
from .config import DEFAULT_PAYMENT_METHOD, ORDER_STATUSES
from .db import get_db, parse_object_id, timestamps, utcnow
from .errors import ApiError

logger = logging.getLogger(__name__)

bp = Blueprint('orders', __name__, url_prefix='/api/orders')

ADDRESS_REQUIRED = ['address', 'city', 'state', 'zipCode', 'country']
ADDRESS_OPTIONAL = ['fullName', 'phoneNumber', 'landmark', 'apartment']


# ============== HELPERS ==============

def generate_order_number(now=None):
    # format: SV-YYYYMMDD-XXXXXX
    date_part = (now or utcnow()).strftime('%Y%m%d')
    return f"SV-{date_part}-{uuid.uuid4().hex[:6].upper()}"


def clean_address(data):
    if not isinstance(data, dict):
        raise ApiError('Shipping address is required', 400)
    missing = [f for f in ADDRESS_REQUIRED if not str(data.get(f, '')).strip()]
    if missing:
        raise ApiError(f"Shipping address is missing: {', '.join(missing)}", 400)
    return {
        f: str(data[f]).strip()
        for f in ADDRESS_REQUIRED + ADDRESS_OPTIONAL
        if data.get(f) is not None
    }


def order_line(item):
    """the snapshot kept on the order; stock is not part of it"""
    return {k: item[k] for k in ['product', 'name', 'image', 'price', 'quantity', 'size', 'color']}


def deduct_stock(items):
    """take stock for every line or none of them"""
    products = get_db().products
    taken = []
    for item in items:
        res = products.update_one(
            {'_id': item['product'], 'stock': {'$gte': item['quantity']}},
            {'$inc': {'stock': -item['quantity']}},
        )
        if res.modified_count != 1:
            restore_stock(taken)
            raise ApiError(f"Insufficient stock for {item['name']}", 400)
        taken.append(item)


def restore_stock(items):
    products = get_db().products
    for item in items:
        # product may have been deleted since
        products.update_one({'_id': item['product']}, {'$inc': {'stock': item['quantity']}})


def find_order_or_404(oid):
    order_id = parse_object_id(oid)
    order = get_db().orders.find_one({'_id': order_id}) if order_id else None
    if not order:
        raise ApiError('Order not found', 404)
    return order


def populate_users(orders):
    """replace the user id on each order with {_id, name, email}"""
    db = get_db()
    ids = list({o['user'] for o in orders if o.get('user')})
    users = {
        u['_id']: u
        for u in db.users.find({'_id': {'$in': ids}}, {'name': 1, 'email': 1})
    }
    for o in orders:
        u = users.get(o.get('user'))
        if u:
            o['user'] = {'_id': u['_id'], 'name': u.get('name'), 'email': u.get('email')}
    return orders


# ---------- USER ----------

@bp.route('', methods=['POST'])
@protect
def create_order():
    data = request.get_json(silent=True) or {}
    uid = g.user['_id']

    raw_items = data.get('orderItems')
    from_cart = not raw_items
    if from_cart:
        raw_items = get_cart_items(uid)
    if not raw_items:
        return jsonify({'message': 'No order items found'}), 400

    address = clean_address(data.get('shippingAddress'))
    items = price_items(raw_items)

    totals = calc_cart_totals(items, data.get('couponCode'))
    if totals.get('couponError'):
        return jsonify({'message': totals['couponError']}), 400

    deduct_stock(items)

    order = timestamps({
        'orderNumber': generate_order_number(),
        'user': uid,
        'orderItems': [order_line(i) for i in items],
        'shippingAddress': address,
        'paymentMethod': str(data.get('paymentMethod') or DEFAULT_PAYMENT_METHOD),
        'couponCode': totals['couponCode'],
        'itemsPrice': totals['itemsPrice'],
        'taxPrice': totals['taxPrice'],
        'shippingPrice': totals['shippingPrice'],
        'discountPrice': totals['discountPrice'],
        'totalPrice': totals['totalPrice'],
        'isPaid': False,
        'paidAt': None,
        'isDelivered': False,
        'deliveredAt': None,
        'orderStatus': 'Processing',
    })
    order['_id'] = get_db().orders.insert_one(order).inserted_id

    if from_cart:
        clear_cart_items(uid)

    logger.info('Order %s placed by %s for %.2f', order['orderNumber'], uid, order['totalPrice'])
    return jsonify(order), 201


@bp.route('/myorders', methods=['GET'])
@protect
def my_orders():
    orders = get_db().orders.find({'user': g.user['_id']}).sort('createdAt', -1)
    return jsonify(list(orders))


@bp.route('/<oid>', methods=['GET'])
@protect
def get_order(oid):
    order = find_order_or_404(oid)
    if order['user'] != g.user['_id'] and not g.user.get('isAdmin'):
        return jsonify({'message': 'Access denied'}), 403
    return jsonify(populate_users([order])[0])


@bp.route('/<oid>/cancel', methods=['PUT'])
@protect
def cancel_order(oid):
    order = find_order_or_404(oid)
    if order['user'] != g.user['_id']:
        return jsonify({'message': 'Access denied'}), 403
    if order['orderStatus'] != 'Processing':
        return jsonify({'message': f"Order is already {order['orderStatus'].lower()}"}), 400

    changes = {
        'orderStatus': 'Cancelled',
        'cancelReason': str((request.get_json(silent=True) or {}).get('reason', '')).strip(),
        'updatedAt': utcnow(),
    }
    # conditional on the status, so a second cancel can't restore stock again
    res = get_db().orders.update_one({'_id': order['_id'], 'orderStatus': 'Processing'}, {'$set': changes})
    if res.matched_count != 1:
        return jsonify({'message': 'Order status changed, please reload'}), 400
    restore_stock(order['orderItems'])
    order.update(changes)
    logger.info('Order %s cancelled by customer', order['orderNumber'])
    return jsonify(order)


# ---------- ADMIN ----------

@bp.route('/admin/all', methods=['GET'])
@admin
def all_orders():
    query = {}
    status = request.args.get('status')
    if status:
        query['orderStatus'] = status
    orders = list(get_db().orders.find(query).sort('createdAt', -1))
    return jsonify(populate_users(orders))


@bp.route('/admin/<oid>/status', methods=['PUT'])
@admin
def update_order_status(oid):
    order = find_order_or_404(oid)
    status = (request.get_json(silent=True) or {}).get('orderStatus')

    if status not in ORDER_STATUSES:
        return jsonify({'message': f"orderStatus must be one of {', '.join(ORDER_STATUSES)}"}), 400
    if order['orderStatus'] == 'Cancelled' and status != 'Cancelled':
        return jsonify({'message': 'Cancelled orders cannot be reopened'}), 400

    now = utcnow()
    changes = {'orderStatus': status, 'updatedAt': now}

    if status == 'Delivered':
        changes['isDelivered'] = True
        changes['deliveredAt'] = now
        # cash is collected on delivery
        if not order.get('isPaid') and order.get('paymentMethod') == DEFAULT_PAYMENT_METHOD:
            changes['isPaid'] = True
            changes['paidAt'] = now

    if status == 'Cancelled':
        changes['isDelivered'] = False
        changes['deliveredAt'] = None

    # the move is only applied from the status read above
    res = get_db().orders.update_one(
        {'_id': order['_id'], 'orderStatus': order['orderStatus']},
        {'$set': changes},
    )
    if res.matched_count != 1:
        return jsonify({'message': 'Order status changed, please reload'}), 400
    if status == 'Cancelled' and order['orderStatus'] != 'Cancelled':
        restore_stock(order['orderItems'])

    order.update(changes)
    logger.info('Order %s -> %s', order.get('orderNumber'), status)
    return jsonify(order)


@bp.route('/admin/<oid>/payment', methods=['PUT'])
@admin
def update_payment(oid):
    order = find_order_or_404(oid)
    is_paid = bool((request.get_json(silent=True) or {}).get('isPaid'))
    changes = {
        'isPaid': is_paid,
        'paidAt': utcnow() if is_paid else None,
        'updatedAt': utcnow(),
    }
    get_db().orders.update_one({'_id': order['_id']}, {'$set': changes})
    order.update(changes)
    return jsonify(order)


@bp.route('/admin/<oid>', methods=['DELETE'])
@admin
def delete_order(oid):
    order = find_order_or_404(oid)
    get_db().orders.delete_one({'_id': order['_id']})
    logger.info('Deleted order %s', order.get('orderNumber'))
    return jsonify({'message': 'Order deleted successfully'})
