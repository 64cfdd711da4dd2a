"""
Revenue aggregation for the admin dashboard.

Everything here is a pure function over order dicts as stored in the
orders collection (createdAt, totalPrice, orderStatus, orderItems,
paymentMethod, user). Only Delivered orders count as revenue.
"""

from collections import OrderedDict
from datetime import datetime, timedelta

REVENUE_STATUS = 'Delivered'
DEFAULT_GROWTH = 0.05


# ============== DATE HELPERS ==============

def start_of_day(dt):
    return dt.replace(hour=0, minute=0, second=0, microsecond=0)


def add_months(dt, months):
    """shift by whole months, clamping the day (Jan 31 + 1 -> Feb 28)"""
    index = dt.year * 12 + dt.month - 1 + months
    year, month = divmod(index, 12)
    month += 1
    day = min(dt.day, days_in_month(year, month))
    return dt.replace(year=year, month=month, day=day)


def days_in_month(year, month):
    if month == 12:
        nxt = datetime(year + 1, 1, 1)
    else:
        nxt = datetime(year, month + 1, 1)
    return (nxt - timedelta(days=1)).day


def day_key(dt):
    return dt.strftime('%Y-%m-%d')


def month_key(dt):
    return dt.strftime('%Y-%m')


def quarter_of(dt):
    return (dt.month - 1) // 3 + 1


# ============== BASICS ==============

def delivered(orders):
    return [o for o in orders if o.get('orderStatus') == REVENUE_STATUS]


def since(orders, start):
    return [o for o in orders if o.get('createdAt') and o['createdAt'] >= start]


def between(orders, start=None, end=None):
    result = []
    for o in orders:
        created = o.get('createdAt')
        if not created:
            continue
        if start and created < start:
            continue
        if end and created > end:
            continue
        result.append(o)
    return result


def order_total(order):
    return order.get('totalPrice') or 0


def line_revenue(item):
    return (item.get('price') or 0) * (item.get('quantity') or 0)


def total_revenue(orders):
    """(revenue, order count, average order value) over delivered orders"""
    done = delivered(orders)
    total = sum(order_total(o) for o in done)
    avg = total / len(done) if done else 0
    return round(total, 2), len(done), round(avg, 2)


def group_revenue(orders, key_fn):
    """bucket orders by key_fn(createdAt); sorted by key ascending"""
    groups = {}
    for o in orders:
        key = key_fn(o['createdAt'])
        bucket = groups.setdefault(key, {'revenue': 0, 'orders': 0})
        bucket['revenue'] += order_total(o)
        bucket['orders'] += 1
    return [
        {'_id': k, 'revenue': round(v['revenue'], 2), 'orders': v['orders']}
        for k, v in sorted(groups.items())
    ]


# ============== PERIODS ==============

def daily_revenue(orders, now, days=7):
    return group_revenue(since(delivered(orders), now - timedelta(days=days)), day_key)


def monthly_revenue(orders, now, months=12):
    return group_revenue(since(delivered(orders), add_months(now, -months)), month_key)


def quarterly_revenue(orders, limit=4):
    """latest quarters first, as {_id: {year, quarter}, revenue, orders}"""
    groups = group_revenue(delivered(orders), lambda dt: (dt.year, quarter_of(dt)))
    groups.sort(key=lambda g: g['_id'], reverse=True)
    return [
        {**g, '_id': {'year': g['_id'][0], 'quarter': g['_id'][1]}}
        for g in groups[:limit]
    ]


def yearly_revenue(orders):
    return group_revenue(delivered(orders), lambda dt: dt.year)


def revenue_summary(orders, now):
    total, count, avg = total_revenue(orders)
    return {
        'total': total,
        'orders': count,
        'averageOrderValue': avg,
        'daily': daily_revenue(orders, now),
        'monthly': monthly_revenue(orders, now),
        'quarterly': quarterly_revenue(orders),
    }


def revenue_in_range(orders, start=None, end=None):
    done = between(delivered(orders), start, end)
    return {'total': round(sum(order_total(o) for o in done), 2), 'orders': len(done)}


def realtime_revenue(orders, now):
    return {
        'today': revenue_in_range(orders, start_of_day(now)),
        'lastHour': revenue_in_range(orders, now - timedelta(hours=1)),
    }


# ============== BREAKDOWNS ==============

def product_sales(orders):
    """product id -> {revenue, quantity} over delivered order lines"""
    sales = OrderedDict()
    for o in delivered(orders):
        for item in o.get('orderItems', []):
            entry = sales.setdefault(item['product'], {'revenue': 0, 'quantity': 0})
            entry['revenue'] += line_revenue(item)
            entry['quantity'] += item.get('quantity') or 0
    return sales


def revenue_by_product(orders, products, limit=10):
    """
    best sellers by revenue. products maps id -> product document; lines
    whose product has since been deleted are left out.
    """
    rows = []
    for pid, entry in product_sales(orders).items():
        product = products.get(pid)
        if not product:
            continue
        rows.append({
            '_id': pid,
            'revenue': round(entry['revenue'], 2),
            'quantity': entry['quantity'],
            'product': {
                'name': product.get('name'),
                'images': product.get('images', []),
                'price': product.get('price'),
                'category': product.get('category'),
            },
        })
    rows.sort(key=lambda r: r['revenue'], reverse=True)
    return rows[:limit]


def top_products(orders, products, limit=5):
    """best sellers by units sold"""
    rows = []
    for pid, entry in product_sales(orders).items():
        product = products.get(pid)
        if not product:
            continue
        rows.append({
            '_id': pid,
            'totalSold': entry['quantity'],
            'revenue': round(entry['revenue'], 2),
            'product': {'name': product.get('name'), 'images': product.get('images', [])},
        })
    rows.sort(key=lambda r: r['totalSold'], reverse=True)
    return rows[:limit]


def revenue_by_category(orders, products):
    groups = {}
    for o in delivered(orders):
        for item in o.get('orderItems', []):
            product = products.get(item['product'])
            if not product:
                continue
            entry = groups.setdefault(product.get('category'), {'revenue': 0, 'orders': set()})
            entry['revenue'] += line_revenue(item)
            entry['orders'].add(o['_id'])
    rows = [
        {'_id': cat, 'revenue': round(v['revenue'], 2), 'orders': len(v['orders'])}
        for cat, v in groups.items()
    ]
    rows.sort(key=lambda r: r['revenue'], reverse=True)
    return rows


def revenue_by_payment_method(orders):
    groups = {}
    for o in delivered(orders):
        entry = groups.setdefault(o.get('paymentMethod') or 'Unknown', {'revenue': 0, 'orders': 0})
        entry['revenue'] += order_total(o)
        entry['orders'] += 1
    rows = [
        {'_id': method, 'revenue': round(v['revenue'], 2), 'orders': v['orders']}
        for method, v in groups.items()
    ]
    rows.sort(key=lambda r: r['revenue'], reverse=True)
    return rows


def revenue_by_customer(orders, limit=10):
    groups = {}
    for o in delivered(orders):
        entry = groups.setdefault(o.get('user'), {'revenue': 0, 'orders': 0})
        entry['revenue'] += order_total(o)
        entry['orders'] += 1
    rows = [
        {'_id': uid, 'revenue': round(v['revenue'], 2), 'orders': v['orders']}
        for uid, v in groups.items()
    ]
    rows.sort(key=lambda r: r['revenue'], reverse=True)
    return rows[:limit]


# ============== FORECAST ==============

def revenue_forecast(orders, now, months=3):
    """
    naive projection: take monthly revenue for the last 6 months, use the
    change between the last two months as the growth rate and compound the
    last month forward.
    """
    historical = monthly_revenue(orders, now, months=6)

    growth = DEFAULT_GROWTH
    if len(historical) >= 2:
        last = historical[-1]['revenue']
        previous = historical[-2]['revenue']
        growth = (last - previous) / previous if previous else 0.0

    if historical:
        last_month = datetime.strptime(historical[-1]['_id'] + '-01', '%Y-%m-%d')
        last_revenue = historical[-1]['revenue']
    else:
        last_month = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
        last_revenue = 0

    forecast = [
        {
            'month': month_key(add_months(last_month, i)),
            'forecast': round(last_revenue * (1 + growth) ** i, 2),
        }
        for i in range(1, months + 1)
    ]
    return {'historical': historical, 'forecast': forecast, 'growthRate': round(growth, 4)}
