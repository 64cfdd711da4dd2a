"""
MongoDB access for ShoeVerse

One client per app, stored in app.extensions. Collections used:
users, products, orders, carts, revoked_tokens.
"""

import logging
import re
from datetime import date, datetime, timezone

from bson import ObjectId
from bson.errors import InvalidId
from flask import current_app
from flask.json.provider import DefaultJSONProvider
from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.errors import PyMongoError

logger = logging.getLogger(__name__)


def utcnow():
    """naive utc timestamp, which is what pymongo hands back"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def mask_uri(uri):
    return re.sub(r':[^:@/]*@', ':<password>@', uri or '')


def init_app(app):
    client = app.config.get('MONGO_CLIENT')
    if client is None:
        logger.info('Connecting to MongoDB at %s', mask_uri(app.config['MONGO_URI']))
        client = MongoClient(app.config['MONGO_URI'])

    name = app.config.get('MONGO_DB_NAME')
    db = client[name] if name else client.get_default_database(default='shoeverse')
    app.extensions['mongo'] = db
    ensure_indexes(db)
    logger.info('Using database %s', db.name)
    return db


def ensure_indexes(db):
    try:
        db.users.create_index([('email', ASCENDING)], unique=True)
        db.orders.create_index([('user', ASCENDING), ('createdAt', DESCENDING)])
        db.orders.create_index([('orderStatus', ASCENDING)])
        db.carts.create_index([('user', ASCENDING)], unique=True)
        db.revoked_tokens.create_index([('jti', ASCENDING)], unique=True)
    except PyMongoError as exc:
        logger.warning('Unable to ensure indexes: %s', exc)


def get_db():
    return current_app.extensions['mongo']


def parse_object_id(value):
    """ObjectId for value, or None when it isn't one"""
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        return None


def timestamps(doc, created=True):
    now = utcnow()
    if created:
        doc['createdAt'] = now
    doc['updatedAt'] = now
    return doc


# ============== JSON ==============

class MongoJSONProvider(DefaultJSONProvider):
    """jsonify that understands ObjectId and writes dates as ISO-8601"""

    @staticmethod
    def default(o):
        if isinstance(o, ObjectId):
            return str(o)
        if isinstance(o, datetime):
            return o.isoformat()
        if isinstance(o, date):
            return o.isoformat()
        return DefaultJSONProvider.default(o)
