"""
Authentication: registration, login, profile and the route guards.

Access and refresh tokens are JWTs (flask-jwt-extended) whose identity is
the user's id. Logging out revokes the presented token by jti.
"""

import logging
import re
from functools import wraps

import bcrypt
from flask import Blueprint, g, jsonify, request
from flask_jwt_extended import (
    JWTManager,
    create_access_token,
    create_refresh_token,
    get_jwt,
    get_jwt_identity,
    jwt_required,
    verify_jwt_in_request,
)
from pymongo.errors import DuplicateKeyError

from .config import PASSWORD_MIN_LENGTH
from .db import get_db, parse_object_id, timestamps, utcnow

logger = logging.getLogger(__name__)

bp = Blueprint('auth', __name__, url_prefix='/api/auth')
jwt = JWTManager()

EMAIL_RE = re.compile(r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$')


# ============== HELPERS ==============

def hash_password(password):
    return bcrypt.hashpw(str(password).encode('utf-8'), bcrypt.gensalt()).decode('utf-8')


def check_password(password, hashed):
    if not hashed:
        return False
    if isinstance(hashed, str):
        hashed = hashed.encode('utf-8')
    return bcrypt.checkpw(password.encode('utf-8'), hashed)


def normalize_email(value):
    return str(value or '').strip().lower()


def validate_email(email):
    return EMAIL_RE.match(email or '') is not None


def public_user(user):
    """user document minus the password hash"""
    return {k: v for k, v in user.items() if k != 'password'}


def issue_tokens(user):
    identity = str(user['_id'])
    claims = {'isAdmin': bool(user.get('isAdmin'))}
    return {
        'token': create_access_token(identity=identity, additional_claims=claims),
        'refreshToken': create_refresh_token(identity=identity),
    }


def load_current_user():
    uid = parse_object_id(get_jwt_identity())
    if uid is None:
        return None
    return get_db().users.find_one({'_id': uid})


def protect(f):
    """require a valid access token belonging to an active user"""
    @wraps(f)
    def decorated(*args, **kwargs):
        verify_jwt_in_request()
        user = load_current_user()
        if not user:
            return jsonify({'message': 'Not authorized, user not found'}), 401
        if user.get('isActive') is False:
            return jsonify({'message': 'Account is blocked. Contact support.'}), 403
        g.user = user
        return f(*args, **kwargs)
    return decorated


def admin(f):
    """protect, and the user has to be an admin"""
    @wraps(f)
    @protect
    def decorated(*args, **kwargs):
        if not g.user.get('isAdmin'):
            return jsonify({'message': 'Not authorized as an admin'}), 403
        return f(*args, **kwargs)
    return decorated


def init_app(app):
    jwt.init_app(app)

    @jwt.token_in_blocklist_loader
    def is_revoked(jwt_header, jwt_payload):
        return get_db().revoked_tokens.find_one({'jti': jwt_payload['jti']}) is not None

    @jwt.unauthorized_loader
    def missing_token(reason):
        return jsonify({'message': 'Not authorized, no token'}), 401

    @jwt.invalid_token_loader
    def invalid_token(reason):
        return jsonify({'message': 'Not authorized, token failed'}), 401

    @jwt.expired_token_loader
    def expired_token(jwt_header, jwt_payload):
        return jsonify({'message': 'Token expired'}), 401

    @jwt.revoked_token_loader
    def revoked_token(jwt_header, jwt_payload):
        return jsonify({'message': 'Token has been revoked'}), 401

    @jwt.needs_fresh_token_loader
    def stale_token(jwt_header, jwt_payload):
        return jsonify({'message': 'Fresh token required'}), 401

    @jwt.user_lookup_error_loader
    def user_missing(jwt_header, jwt_payload):
        return jsonify({'message': 'Not authorized, user not found'}), 401


# ============== ROUTES ==============

@bp.route('/register', methods=['POST'])
def register():
    data = request.get_json(silent=True)
    if not data:
        return jsonify({'message': 'No data provided'}), 400

    name = str(data.get('name', '')).strip()
    email = normalize_email(data.get('email'))
    password = str(data.get('password', ''))

    if not name or not email or not password:
        return jsonify({'message': 'Name, email and password are required'}), 400
    if not validate_email(email):
        return jsonify({'message': 'Invalid email format'}), 400
    if len(password) < PASSWORD_MIN_LENGTH:
        return jsonify({'message': f'Password must be at least {PASSWORD_MIN_LENGTH} characters'}), 400

    db = get_db()
    if db.users.find_one({'email': email}):
        return jsonify({'message': 'User already exists'}), 400

    user = timestamps({
        'name': name,
        'email': email,
        'password': hash_password(password),
        'phone': str(data.get('phone', '')).strip(),
        'isAdmin': False,
        'isActive': True,
        'lastLogin': None,
    })
    try:
        user['_id'] = db.users.insert_one(user).inserted_id
    except DuplicateKeyError:
        return jsonify({'message': 'User already exists'}), 400

    logger.info('Registered user %s', email)
    return jsonify({**public_user(user), **issue_tokens(user)}), 201


@bp.route('/login', methods=['POST'])
def login():
    data = request.get_json(silent=True) or {}
    email = normalize_email(data.get('email'))
    password = str(data.get('password', ''))

    if not email or not password:
        return jsonify({'message': 'Email and password are required'}), 400

    db = get_db()
    user = db.users.find_one({'email': email})
    if not user or not check_password(password, user.get('password')):
        return jsonify({'message': 'Invalid email or password'}), 401

    if user.get('isActive') is False:
        return jsonify({'message': 'Account is blocked. Contact support.'}), 403

    user['lastLogin'] = utcnow()
    db.users.update_one({'_id': user['_id']}, {'$set': {'lastLogin': user['lastLogin']}})

    logger.info('Login %s', email)
    return jsonify({**public_user(user), **issue_tokens(user)})


@bp.route('/profile', methods=['GET'])
@protect
def get_profile():
    return jsonify(public_user(g.user))


@bp.route('/profile', methods=['PUT'])
@protect
def update_profile():
    data = request.get_json(silent=True) or {}
    user = g.user
    changes = {}

    if data.get('name'):
        changes['name'] = str(data['name']).strip()
    if 'phone' in data:
        changes['phone'] = str(data.get('phone') or '').strip()
    if data.get('email'):
        email = normalize_email(data['email'])
        if not validate_email(email):
            return jsonify({'message': 'Invalid email format'}), 400
        if email != user['email'] and get_db().users.find_one({'email': email}):
            return jsonify({'message': 'Email already in use'}), 400
        changes['email'] = email
    if data.get('password'):
        password = str(data['password'])
        if len(password) < PASSWORD_MIN_LENGTH:
            return jsonify({'message': f'Password must be at least {PASSWORD_MIN_LENGTH} characters'}), 400
        changes['password'] = hash_password(password)

    changes['updatedAt'] = utcnow()
    try:
        get_db().users.update_one({'_id': user['_id']}, {'$set': changes})
    except DuplicateKeyError:
        return jsonify({'message': 'Email already in use'}), 400
    user.update(changes)
    return jsonify({**public_user(user), **issue_tokens(user)})


@bp.route('/change-password', methods=['PUT'])
@protect
def change_password():
    data = request.get_json(silent=True) or {}
    current = str(data.get('currentPassword', ''))
    new = str(data.get('newPassword', ''))

    if not check_password(current, g.user.get('password')):
        return jsonify({'message': 'Current password is incorrect'}), 400
    if len(new) < PASSWORD_MIN_LENGTH:
        return jsonify({'message': f'Password must be at least {PASSWORD_MIN_LENGTH} characters'}), 400

    get_db().users.update_one(
        {'_id': g.user['_id']},
        {'$set': {'password': hash_password(new), 'updatedAt': utcnow()}},
    )
    return jsonify({'message': 'Password updated successfully'})


@bp.route('/refresh-token', methods=['POST'])
@jwt_required(refresh=True)
def refresh_token():
    user = load_current_user()
    if not user or user.get('isActive') is False:
        return jsonify({'message': 'Not authorized, user not found'}), 401
    token = create_access_token(
        identity=str(user['_id']),
        additional_claims={'isAdmin': bool(user.get('isAdmin'))},
    )
    return jsonify({'token': token})


@bp.route('/logout', methods=['POST'])
@jwt_required(verify_type=False)
def logout():
    claims = get_jwt()
    get_db().revoked_tokens.update_one(
        {'jti': claims['jti']},
        {'$setOnInsert': {'jti': claims['jti'], 'type': claims.get('type'), 'revokedAt': utcnow()}},
        upsert=True,
    )
    return jsonify({'message': 'Logged out successfully'})


@bp.route('/users', methods=['GET'])
@admin
def list_users():
    users = get_db().users.find({}, {'password': 0}).sort('createdAt', -1)
    return jsonify(list(users))
