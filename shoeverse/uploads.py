"""
Product image uploads, stored on local disk and served from /uploads.
"""

import logging
import os
import random
import time

from flask import Blueprint, current_app, jsonify, request, send_from_directory
from werkzeug.utils import secure_filename

from .auth import admin
from .config import MAX_UPLOAD_BYTES, MAX_UPLOAD_FILES
from .errors import ApiError

logger = logging.getLogger(__name__)

bp = Blueprint('upload', __name__, url_prefix='/api/upload')


# ============== HELPERS ==============

def upload_dir():
    folder = current_app.config['UPLOAD_FOLDER']
    os.makedirs(folder, exist_ok=True)
    return folder


def file_size(storage):
    stream = storage.stream
    stream.seek(0, os.SEEK_END)
    size = stream.tell()
    stream.seek(0)
    return size


def check_image(storage):
    if not storage or not storage.filename:
        raise ApiError('No file uploaded', 400)
    if not (storage.mimetype or '').startswith('image/'):
        raise ApiError('Only image files allowed', 400)
    if file_size(storage) > MAX_UPLOAD_BYTES:
        raise ApiError(f'File too large (max {MAX_UPLOAD_BYTES // (1024 * 1024)}MB)', 413)


def stored_name(original):
    ext = os.path.splitext(secure_filename(original or ''))[1].lower()
    return f"image-{int(time.time() * 1000)}-{random.randint(0, 10 ** 9)}{ext}"


def save_image(storage, primary=False):
    name = stored_name(storage.filename)
    storage.save(os.path.join(upload_dir(), name))
    logger.info('Stored upload %s (%s)', name, storage.filename)
    return {
        'url': f"{current_app.config['BASE_URL']}/uploads/{name}",
        'alt': storage.filename,
        'isPrimary': primary,
    }


def serve_upload(filename):
    return send_from_directory(upload_dir(), filename)


# ============== ROUTES ==============

@bp.route('', methods=['POST'])
@admin
def upload_single():
    storage = request.files.get('image')
    if not storage:
        return jsonify({'message': 'No file uploaded'}), 400
    check_image(storage)
    return jsonify({'message': 'Upload successful', 'file': save_image(storage, primary=True)})


@bp.route('/multiple', methods=['POST'])
@admin
def upload_multiple():
    files = [f for f in request.files.getlist('images') if f and f.filename]
    if not files:
        return jsonify({'message': 'No files uploaded'}), 400
    if len(files) > MAX_UPLOAD_FILES:
        return jsonify({'message': f'At most {MAX_UPLOAD_FILES} files per upload'}), 400

    # validate everything before writing anything
    for f in files:
        check_image(f)
    saved = [save_image(f, primary=(i == 0)) for i, f in enumerate(files)]
    return jsonify({'message': 'Upload successful', 'files': saved})


@bp.route('/<filename>', methods=['DELETE'])
@admin
def delete_upload(filename):
    safe = secure_filename(filename)
    if not safe or safe != filename:
        return jsonify({'message': 'Invalid file name'}), 400

    path = os.path.join(upload_dir(), safe)
    if not os.path.isfile(path):
        return jsonify({'message': 'File not found'}), 404

    os.remove(path)
    logger.info('Deleted upload %s', safe)
    return jsonify({'message': 'File deleted successfully'})
