import logging
import math
import re
from datetime import datetime, timedelta

from flask import Blueprint, g, jsonify, request
from pymongo.errors import DuplicateKeyError

from . import analytics
from .auth import admin, normalize_email, validate_email
from .config import LOW_STOCK_THRESHOLD, ORDER_STATUSES
from .db import get_db, parse_object_id, utcnow
from .errors import ApiError

logger = logging.getLogger(__name__)

bp = Blueprint('admin', __name__, url_prefix='/api/admin')


# ============== HELPERS ==============

def delivered_orders(query=None):
    return list(get_db().orders.find({**(query or {}), 'orderStatus': analytics.REVENUE_STATUS}))


def products_by_id():
    return {p['_id']: p for p in get_db().products.find({}, {'name': 1, 'images': 1, 'price': 1, 'category': 1})}


def parse_date_arg(name, end_of_day=False):
    """a bare date as an end bound covers that whole day"""
    raw = request.args.get(name)
    if not raw:
        return None
    try:
        day = datetime.strptime(raw, '%Y-%m-%d')
    except ValueError:
        pass
    else:
        return day + timedelta(days=1, microseconds=-1) if end_of_day else day
    for fmt in ('%Y-%m-%dT%H:%M:%S', '%Y-%m-%dT%H:%M:%S.%f'):
        try:
            return datetime.strptime(raw.rstrip('Z'), fmt)
        except ValueError:
            continue
    raise ApiError(f'{name} must be a date like 2024-01-31', 400)


def find_user_or_404(uid):
    oid = parse_object_id(uid)
    user = get_db().users.find_one({'_id': oid}, {'password': 0}) if oid else None
    if not user:
        raise ApiError('User not found', 404)
    return user


def user_spend(user_id):
    total = sum(analytics.order_total(o) for o in delivered_orders({'user': user_id}))
    return round(total, 2)


def success(data):
    return jsonify({'success': True, 'data': data})


# ---------- DASHBOARD ----------

@bp.route('/dashboard-stats', methods=['GET'])
@admin
def dashboard_stats():
    db = get_db()
    now = utcnow()
    today = analytics.start_of_day(now)

    done = delivered_orders()
    revenue, _, avg = analytics.total_revenue(done)

    status_counts = {s.lower(): db.orders.count_documents({'orderStatus': s}) for s in ORDER_STATUSES}
    total_orders = db.orders.count_documents({})
    total_users = db.users.count_documents({})
    total_products = db.products.count_documents({})

    recent = list(
        db.orders.find({}, {'orderNumber': 1, 'totalPrice': 1, 'orderStatus': 1, 'createdAt': 1, 'user': 1})
        .sort('createdAt', -1)
        .limit(5)
    )
    users = {u['_id']: u for u in db.users.find(
        {'_id': {'$in': [o['user'] for o in recent if o.get('user')]}}, {'name': 1, 'email': 1})}
    for o in recent:
        if o.get('user') in users:
            o['user'] = users[o['user']]

    low_stock = list(
        db.products.find({'stock': {'$lt': LOW_STOCK_THRESHOLD}}, {'name': 1, 'images': 1, 'stock': 1})
        .sort('stock', 1)
        .limit(5)
    )

    return success({
        'overview': {
            'totalProducts': total_products,
            'totalOrders': total_orders,
            'totalUsers': total_users,
            'totalRevenue': revenue,
            'averageOrderValue': avg,
        },
        'users': {
            'total': total_users,
            'newToday': db.users.count_documents({'createdAt': {'$gte': today}}),
            'newThisWeek': db.users.count_documents({'createdAt': {'$gte': today - timedelta(days=7)}}),
            'newThisMonth': db.users.count_documents({'createdAt': {'$gte': analytics.add_months(today, -1)}}),
        },
        'orders': {'total': total_orders, **status_counts},
        'products': {
            'total': total_products,
            'lowStock': db.products.count_documents({'stock': {'$lt': LOW_STOCK_THRESHOLD}}),
        },
        'recentOrders': recent,
        'lowStockProducts': low_stock,
        'topProducts': analytics.top_products(done, products_by_id()),
    })


# ---------- USERS ----------

@bp.route('/users', methods=['GET'])
@admin
def list_users():
    page = max(request.args.get('page', 1, type=int) or 1, 1)
    limit = max(request.args.get('limit', 10, type=int) or 10, 1)
    search = request.args.get('search', '').strip()
    role = request.args.get('role', '')
    status = request.args.get('status', '')

    query = {}
    if search:
        pattern = {'$regex': re.escape(search), '$options': 'i'}
        query['$or'] = [{'name': pattern}, {'email': pattern}]
    if role == 'admin':
        query['isAdmin'] = True
    elif role == 'user':
        query['isAdmin'] = False
    if status == 'active':
        query['isActive'] = {'$ne': False}
    elif status == 'inactive':
        query['isActive'] = False

    db = get_db()
    total = db.users.count_documents(query)
    users = list(
        db.users.find(query, {'password': 0})
        .sort([('createdAt', -1), ('_id', 1)])
        .skip((page - 1) * limit)
        .limit(limit)
    )

    for user in users:
        last = list(db.orders.find({'user': user['_id']}, {'createdAt': 1}).sort('createdAt', -1).limit(1))
        user['orderCount'] = db.orders.count_documents({'user': user['_id']})
        user['totalSpent'] = user_spend(user['_id'])
        user['lastOrderDate'] = last[0]['createdAt'] if last else None

    return success({
        'users': users,
        'pagination': {
            'page': page,
            'limit': limit,
            'total': total,
            'pages': math.ceil(total / limit),
        },
    })


@bp.route('/users/export', methods=['GET'])
@admin
def export_users():
    rows = []
    for user in get_db().users.find({}, {'password': 0}).sort('createdAt', 1):
        created = user.get('createdAt')
        last_login = user.get('lastLogin')
        rows.append({
            'ID': str(user['_id']),
            'Name': user.get('name'),
            'Email': user.get('email'),
            'Role': 'Admin' if user.get('isAdmin') else 'User',
            'Status': 'Blocked' if user.get('isActive') is False else 'Active',
            'Join Date': created.strftime('%Y-%m-%d') if created else '',
            'Last Login': last_login.strftime('%Y-%m-%d') if last_login else 'Never',
        })
    return success(rows)


@bp.route('/users/<uid>', methods=['GET'])
@admin
def user_details(uid):
    user = find_user_or_404(uid)
    db = get_db()
    orders = list(db.orders.find({'user': user['_id']}).sort('createdAt', -1).limit(10))
    return success({
        'user': user,
        'orders': orders,
        'stats': {
            'totalOrders': db.orders.count_documents({'user': user['_id']}),
            'totalSpent': user_spend(user['_id']),
            'memberSince': user.get('createdAt'),
            'lastActive': user.get('lastLogin') or user.get('createdAt'),
        },
    })


@bp.route('/users/<uid>', methods=['PUT'])
@admin
def update_user(uid):
    user = find_user_or_404(uid)
    data = request.get_json(silent=True) or {}
    is_self = user['_id'] == g.user['_id']

    if is_self and data.get('isAdmin') is False:
        return jsonify({'success': False, 'message': 'Cannot remove admin status from yourself'}), 400

    changes = {}
    if data.get('name'):
        changes['name'] = str(data['name']).strip()
    if data.get('email'):
        email = normalize_email(data['email'])
        if not validate_email(email):
            return jsonify({'success': False, 'message': 'Invalid email format'}), 400
        if email != user.get('email') and get_db().users.find_one({'email': email}):
            return jsonify({'success': False, 'message': 'Email already in use'}), 400
        changes['email'] = email
    if data.get('isAdmin') is not None:
        changes['isAdmin'] = bool(data['isAdmin'])
    if data.get('isActive') is not None:
        changes['isActive'] = bool(data['isActive'])
    changes['updatedAt'] = utcnow()

    try:
        get_db().users.update_one({'_id': user['_id']}, {'$set': changes})
    except DuplicateKeyError:
        return jsonify({'success': False, 'message': 'Email already in use'}), 400
    user.update(changes)
    logger.info('Admin %s updated user %s', g.user['email'], user['email'])
    return success({k: user.get(k) for k in ['_id', 'name', 'email', 'isAdmin', 'isActive']})


@bp.route('/users/<uid>', methods=['DELETE'])
@admin
def delete_user(uid):
    user = find_user_or_404(uid)
    if user['_id'] == g.user['_id']:
        return jsonify({'success': False, 'message': 'Cannot delete your own account'}), 400

    db = get_db()
    if db.orders.count_documents({'user': user['_id']}) > 0:
        # order history has to keep its customer
        db.users.update_one({'_id': user['_id']}, {'$set': {'isActive': False, 'updatedAt': utcnow()}})
        return jsonify({'success': True, 'message': 'User has orders, account deactivated instead'})

    db.users.delete_one({'_id': user['_id']})
    db.carts.delete_one({'user': user['_id']})
    logger.info('Admin %s deleted user %s', g.user['email'], user['email'])
    return jsonify({'success': True, 'message': 'User deleted successfully'})


@bp.route('/users/<uid>/toggle-block', methods=['PATCH'])
@admin
def toggle_block(uid):
    user = find_user_or_404(uid)
    if user['_id'] == g.user['_id']:
        return jsonify({'success': False, 'message': 'Cannot block your own account'}), 400

    active = user.get('isActive') is False
    get_db().users.update_one({'_id': user['_id']}, {'$set': {'isActive': active, 'updatedAt': utcnow()}})
    return success({
        '_id': user['_id'],
        'isActive': active,
        'message': f"User {'unblocked' if active else 'blocked'} successfully",
    })


@bp.route('/users/<uid>/activity', methods=['GET'])
@admin
def user_activity(uid):
    user = find_user_or_404(uid)
    limit = max(request.args.get('limit', 10, type=int) or 10, 1)
    db = get_db()
    recent = list(
        db.orders.find({'user': user['_id']}, {'orderNumber': 1, 'totalPrice': 1, 'orderStatus': 1, 'createdAt': 1})
        .sort('createdAt', -1)
        .limit(limit)
    )
    return success({
        'user': {k: user.get(k) for k in ['_id', 'name', 'email', 'lastLogin', 'createdAt']},
        'activity': {
            'lastLogin': user.get('lastLogin'),
            'recentOrders': recent,
            'totalOrders': db.orders.count_documents({'user': user['_id']}),
            'memberSince': user.get('createdAt'),
        },
    })


# ---------- REVENUE ----------

@bp.route('/revenue/summary', methods=['GET'])
@admin
def revenue_summary():
    return success(analytics.revenue_summary(delivered_orders(), utcnow()))


@bp.route('/revenue/range', methods=['GET'])
@admin
def revenue_range():
    start = parse_date_arg('startDate')
    end = parse_date_arg('endDate', end_of_day=True)
    return success(analytics.revenue_in_range(delivered_orders(), start, end))


@bp.route('/revenue/products', methods=['GET'])
@admin
def revenue_products():
    limit = max(request.args.get('limit', 10, type=int) or 10, 1)
    return success(analytics.revenue_by_product(delivered_orders(), products_by_id(), limit))


@bp.route('/revenue/categories', methods=['GET'])
@admin
def revenue_categories():
    return success(analytics.revenue_by_category(delivered_orders(), products_by_id()))


@bp.route('/revenue/payment-methods', methods=['GET'])
@admin
def revenue_payment_methods():
    return success(analytics.revenue_by_payment_method(delivered_orders()))


@bp.route('/revenue/yearly', methods=['GET'])
@admin
def revenue_yearly():
    return success(analytics.yearly_revenue(delivered_orders()))


@bp.route('/revenue/customers', methods=['GET'])
@admin
def revenue_customers():
    limit = max(request.args.get('limit', 10, type=int) or 10, 1)
    rows = analytics.revenue_by_customer(delivered_orders(), limit)
    users = {u['_id']: u for u in get_db().users.find(
        {'_id': {'$in': [r['_id'] for r in rows]}}, {'name': 1, 'email': 1})}
    for row in rows:
        u = users.get(row['_id'], {})
        row['name'] = u.get('name', 'Unknown')
        row['email'] = u.get('email')
    return success(rows)


@bp.route('/revenue/forecast', methods=['GET'])
@admin
def revenue_forecast():
    months = min(max(request.args.get('months', 3, type=int) or 3, 1), 24)
    return success(analytics.revenue_forecast(delivered_orders(), utcnow(), months))


@bp.route('/revenue/realtime', methods=['GET'])
@admin
def revenue_realtime():
    return success(analytics.realtime_revenue(delivered_orders(), utcnow()))
