import logging
import math
import re

from flask import Blueprint, jsonify, request

from .auth import admin
from .config import (
    CATEGORIES,
    FEATURED_FALLBACK,
    FEATURED_LIMIT,
    LOW_STOCK_THRESHOLD,
    PAGE_SIZE,
)
from .db import get_db, parse_object_id, timestamps, utcnow
from .errors import ApiError

logger = logging.getLogger(__name__)

bp = Blueprint('products', __name__, url_prefix='/api/products')

REQUIRED_FIELDS = ['name', 'brand', 'category', 'description', 'price']

SORTS = {
    'price-low': [('price', 1)],
    'price-high': [('price', -1)],
    'newest': [('createdAt', -1)],
}
DEFAULT_SORT = [('rating', -1)]  # popularity


# ============== HELPERS ==============

def non_negative(data, field, cast=float):
    try:
        value = cast(data[field])
    except (TypeError, ValueError):
        raise ApiError(f'{field} must be a number', 400)
    if value < 0:
        raise ApiError(f'{field} cannot be negative', 400)
    return value


def clean_images(images):
    result = []
    for img in images or []:
        if isinstance(img, str):
            img = {'url': img}
        if not img.get('url'):
            continue
        result.append({
            'url': img['url'],
            'alt': img.get('alt', ''),
            'isPrimary': bool(img.get('isPrimary', False)),
        })
    if result and not any(i['isPrimary'] for i in result):
        result[0]['isPrimary'] = True
    return result


def clean_sizes(sizes):
    result = []
    for s in sizes or []:
        try:
            result.append({'size': float(s['size']), 'quantity': int(s.get('quantity', 0))})
        except (KeyError, TypeError, ValueError):
            raise ApiError('Sizes must look like {size, quantity}', 400)
    # whole sizes stay ints so 9 doesn't come back as 9.0
    for s in result:
        if s['size'].is_integer():
            s['size'] = int(s['size'])
    return result


def clean_product(data, existing=None):
    """validate input; on update, missing fields keep their current value"""
    product = dict(existing or {})

    if existing is None:
        missing = [f for f in REQUIRED_FIELDS if data.get(f) in (None, '')]
        if missing:
            raise ApiError(f"Missing fields: {', '.join(missing)}", 400)

    for field in ['name', 'brand', 'description']:
        if data.get(field):
            product[field] = str(data[field]).strip()

    if data.get('category'):
        if data['category'] not in CATEGORIES:
            raise ApiError(f"Category must be one of {', '.join(CATEGORIES)}", 400)
        product['category'] = data['category']

    if data.get('price') not in (None, ''):
        product['price'] = non_negative(data, 'price')
    if data.get('originalPrice') not in (None, ''):
        product['originalPrice'] = non_negative(data, 'originalPrice')
    if data.get('stock') not in (None, ''):
        product['stock'] = non_negative(data, 'stock', int)
    elif existing is None:
        product['stock'] = 0

    if 'images' in data and data['images'] is not None:
        product['images'] = clean_images(data['images'])
    if 'sizes' in data and data['sizes'] is not None:
        product['sizes'] = clean_sizes(data['sizes'])
    if 'colors' in data and data['colors'] is not None:
        product['colors'] = [str(c) for c in data['colors']]
    if 'isFeatured' in data and data['isFeatured'] is not None:
        product['isFeatured'] = bool(data['isFeatured'])

    if existing is None:
        product.setdefault('images', [])
        product.setdefault('sizes', [])
        product.setdefault('colors', [])
        product.setdefault('isFeatured', False)
        product['rating'] = 0
        product['numReviews'] = 0
    return product


def parse_price_range(value):
    """'2000-5000' -> {'$gte': 2000, '$lte': 5000}; either side may be blank"""
    lo, _, hi = (value or '').partition('-')
    cond = {}
    try:
        if lo.strip():
            cond['$gte'] = float(lo)
        if hi.strip():
            cond['$lte'] = float(hi)
    except ValueError:
        raise ApiError('price must look like min-max', 400)
    return cond


def find_product_or_404(pid):
    oid = parse_object_id(pid)
    product = get_db().products.find_one({'_id': oid}) if oid else None
    if not product:
        raise ApiError('Product not found', 404)
    return product


# ---------- PUBLIC ----------

@bp.route('', methods=['GET'])
def list_products():
    page = request.args.get('page', 1, type=int) or 1
    page = max(page, 1)

    query = {}
    keyword = request.args.get('keyword', '').strip()
    if keyword:
        query['name'] = {'$regex': re.escape(keyword), '$options': 'i'}
    # the storefront sends brand names (Nike, Adidas) as its "category"
    if request.args.get('category'):
        query['brand'] = request.args['category']
    if request.args.get('price'):
        price = parse_price_range(request.args['price'])
        if price:
            query['price'] = price

    sort = SORTS.get(request.args.get('sort'), DEFAULT_SORT)

    db = get_db()
    count = db.products.count_documents(query)
    products = (
        db.products.find(query)
        .sort(sort + [('_id', 1)])
        .skip(PAGE_SIZE * (page - 1))
        .limit(PAGE_SIZE)
    )

    return jsonify({
        'products': list(products),
        'page': page,
        'pages': math.ceil(count / PAGE_SIZE),
        'total': count,
    })


@bp.route('/featured', methods=['GET'])
def featured_products():
    db = get_db()
    products = list(db.products.find({'isFeatured': True}).limit(FEATURED_LIMIT))
    if not products:
        products = list(db.products.find().limit(FEATURED_FALLBACK))
    return jsonify(products)


@bp.route('/categories', methods=['GET'])
def list_categories():
    return jsonify(sorted(get_db().products.distinct('category')))


@bp.route('/brands', methods=['GET'])
def list_brands():
    return jsonify(sorted(get_db().products.distinct('brand')))


@bp.route('/<pid>', methods=['GET'])
def get_product(pid):
    return jsonify(find_product_or_404(pid))


# ---------- ADMIN ----------

@bp.route('', methods=['POST'])
@admin
def create_product():
    data = request.get_json(silent=True)
    if not data:
        return jsonify({'message': 'No data provided'}), 400

    product = timestamps(clean_product(data))
    product['_id'] = get_db().products.insert_one(product).inserted_id
    logger.info('Created product %s (%s)', product['_id'], product['name'])
    return jsonify(product), 201


@bp.route('/<pid>', methods=['PUT'])
@admin
def update_product(pid):
    existing = find_product_or_404(pid)
    data = request.get_json(silent=True) or {}

    product = clean_product(data, existing)
    product['updatedAt'] = utcnow()
    get_db().products.replace_one({'_id': existing['_id']}, product)
    return jsonify(product)


@bp.route('/<pid>', methods=['DELETE'])
@admin
def delete_product(pid):
    product = find_product_or_404(pid)
    get_db().products.delete_one({'_id': product['_id']})
    logger.info('Deleted product %s', product['_id'])
    return jsonify({'message': 'Product removed'})


@bp.route('/<pid>/stock', methods=['PATCH'])
@admin
def adjust_stock(pid):
    """{'stock': n} sets stock, {'adjust': +/-n} moves it; never below zero"""
    product = find_product_or_404(pid)
    data = request.get_json(silent=True) or {}

    if 'stock' in data:
        stock = non_negative(data, 'stock', int)
    elif 'adjust' in data:
        try:
            stock = product.get('stock', 0) + int(data['adjust'])
        except (TypeError, ValueError):
            return jsonify({'message': 'adjust must be a number'}), 400
        if stock < 0:
            return jsonify({'message': 'Stock cannot go below zero'}), 400
    else:
        return jsonify({'message': 'Provide stock or adjust'}), 400

    get_db().products.update_one(
        {'_id': product['_id']},
        {'$set': {'stock': stock, 'updatedAt': utcnow()}},
    )
    product['stock'] = stock
    return jsonify(product)


@bp.route('/low-stock', methods=['GET'])
@admin
def low_stock():
    threshold = request.args.get('threshold', LOW_STOCK_THRESHOLD, type=int)
    products = get_db().products.find({'stock': {'$lt': threshold}}).sort('stock', 1)
    return jsonify(list(products))
