"""
ShoeVerse storefront API
"""

import logging
import time

from flask import Flask, g, jsonify, request
from flask_cors import CORS

from . import admin, auth, cart, db, orders, products, uploads
from .config import load_config
from .db import MongoJSONProvider, utcnow
from .errors import register_error_handlers
from .seed import seed_command

__version__ = '1.0.0'

logger = logging.getLogger(__name__)


def create_app(overrides=None):
    """build the app; overrides win over the environment (tests pass MONGO_CLIENT)"""
    app = Flask(__name__)
    app.config.update(load_config(overrides))
    app.json = MongoJSONProvider(app)

    logging.basicConfig(
        level=app.config['LOG_LEVEL'],
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )

    CORS(
        app,
        origins=app.config['CORS_ORIGINS'],
        supports_credentials=True,
        methods=['GET', 'POST', 'PUT', 'PATCH', 'DELETE', 'OPTIONS'],
        allow_headers=['Content-Type', 'Authorization'],
    )

    db.init_app(app)
    auth.init_app(app)

    for module in (auth, products, cart, orders, uploads, admin):
        app.register_blueprint(module.bp)
    app.add_url_rule('/uploads/<path:filename>', 'uploaded_file', uploads.serve_upload)

    register_error_handlers(app)
    register_request_logging(app)
    register_meta_routes(app)
    app.cli.add_command(seed_command)

    return app


def register_request_logging(app):

    @app.before_request
    def start_timer():
        g.started = time.perf_counter()

    @app.after_request
    def log_request(response):
        elapsed = (time.perf_counter() - g.get('started', time.perf_counter())) * 1000
        logger.info('%s %s -> %s (%.1fms)', request.method, request.full_path.rstrip('?'),
                    response.status_code, elapsed)
        return response


# ============== META ROUTES ==============

def register_meta_routes(app):

    @app.route('/')
    def root():
        return 'ShoeVerse Backend API Running Successfully!'

    @app.route('/api/health')
    def health():
        return jsonify({
            'status': 'OK',
            'message': 'ShoeVerse API is running',
            'version': __version__,
            'timestamp': utcnow(),
        })

    @app.route('/api/test')
    def test_endpoint():
        return jsonify({
            'message': 'Test endpoint is working!',
            'env': {
                'port': app.config['PORT'],
                'mongo_uri_set': bool(app.config.get('MONGO_URI')),
                'node_env': app.config['ENV_NAME'],
            },
        })
