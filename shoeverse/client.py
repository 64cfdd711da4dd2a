"""
Thin HTTP client for the ShoeVerse API.

Attaches the bearer token to every request. When a request comes back 401
it refreshes the access token once and retries; when that fails the tokens
are dropped and AuthenticationRequired is raised so the caller can send
the user back to the login screen.
"""

import logging

import requests

from .errors import ApiError, AuthenticationRequired

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30

# never retried through a refresh
AUTH_PATHS = ('/auth/login', '/auth/register', '/auth/refresh-token')


class ShoeVerseClient:

    def __init__(self, base_url='http://localhost:5000/api', token=None,
                 refresh_token=None, timeout=DEFAULT_TIMEOUT, session=None):
        self.base_url = base_url.rstrip('/')
        self.token = token
        self.refresh_token = refresh_token
        self.timeout = timeout
        self.session = session or requests.Session()
        self.user = None

    # ---------- plumbing ----------

    def _send(self, method, path, token=None, **kwargs):
        headers = kwargs.pop('headers', None) or {}
        token = token or self.token
        if token:
            headers['Authorization'] = f'Bearer {token}'
        try:
            return self.session.request(
                method, self.base_url + path, headers=headers,
                timeout=self.timeout, **kwargs
            )
        except requests.Timeout:
            raise ApiError('Request timeout. Please try again.', 408)
        except requests.ConnectionError:
            raise ApiError('Cannot connect to server. Please make sure backend is running.', 503)

    def request(self, method, path, **kwargs):
        response = self._send(method, path, **kwargs)

        if response.status_code == 401 and path not in AUTH_PATHS:
            if self.refresh():
                response = self._send(method, path, **kwargs)
            if response.status_code == 401:
                logger.info('Session expired, clearing tokens')
                self.clear_tokens()
                raise AuthenticationRequired(error_message(response) or 'Please log in again')

        if not response.ok:
            raise ApiError(error_message(response) or response.reason, response.status_code)
        if not response.content:
            return None
        return response.json()

    def get(self, path, **params):
        return self.request('GET', path, params=params or None)

    def post(self, path, data=None):
        return self.request('POST', path, json=data or {})

    def put(self, path, data=None):
        return self.request('PUT', path, json=data or {})

    def patch(self, path, data=None):
        return self.request('PATCH', path, json=data or {})

    def delete(self, path, data=None):
        return self.request('DELETE', path, json=data)

    # ---------- session ----------

    def refresh(self):
        """swap the refresh token for a new access token; False when that's not possible"""
        if not self.refresh_token:
            return False
        response = self._send('POST', '/auth/refresh-token', token=self.refresh_token)
        if not response.ok:
            return False
        self.token = response.json()['token']
        return True

    def clear_tokens(self):
        self.token = None
        self.refresh_token = None
        self.user = None

    def _remember(self, payload):
        self.token = payload.pop('token', None)
        self.refresh_token = payload.pop('refreshToken', None)
        self.user = payload
        return payload

    def register(self, name, email, password):
        return self._remember(self.post('/auth/register', {'name': name, 'email': email, 'password': password}))

    def login(self, email, password):
        return self._remember(self.post('/auth/login', {'email': email, 'password': password}))

    def logout(self):
        try:
            if self.token:
                self.post('/auth/logout')
        finally:
            self.clear_tokens()

    def profile(self):
        return self.get('/auth/profile')

    # ---------- catalogue ----------

    def products(self, **params):
        return self.get('/products', **params)

    def product(self, product_id):
        return self.get(f'/products/{product_id}')

    def featured(self):
        return self.get('/products/featured')

    # ---------- cart & orders ----------

    def cart(self):
        return self.get('/cart')

    def add_to_cart(self, product_id, quantity=1, size=None, color=None):
        return self.post('/cart/items', {'product': product_id, 'quantity': quantity, 'size': size, 'color': color})

    def quote(self, items=None, coupon_code=None):
        return self.post('/cart/quote', {'items': items, 'couponCode': coupon_code})

    def place_order(self, shipping_address, payment_method=None, items=None, coupon_code=None):
        payload = {'shippingAddress': shipping_address, 'orderItems': items}
        if payment_method:
            payload['paymentMethod'] = payment_method
        if coupon_code:
            payload['couponCode'] = coupon_code
        return self.post('/orders', payload)

    def my_orders(self):
        return self.get('/orders/myorders')

    # ---------- admin ----------

    def dashboard_stats(self):
        return self.get('/admin/dashboard-stats')['data']

    def revenue_summary(self):
        return self.get('/admin/revenue/summary')['data']


def error_message(response):
    try:
        body = response.json()
    except ValueError:
        return None
    if isinstance(body, dict):
        return body.get('message')
    return None
