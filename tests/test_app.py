import mongomock

from shoeverse import __version__, create_app
from shoeverse.errors import ApiError


def test_root(client):
    resp = client.get('/')
    assert resp.status_code == 200
    assert b'ShoeVerse' in resp.data


def test_health(client):
    body = client.get('/api/health').get_json()
    assert body['status'] == 'OK'
    assert body['version'] == __version__
    assert body['timestamp']


def test_test_endpoint(client):
    body = client.get('/api/test').get_json()
    assert body['env']['node_env'] == 'test'


def test_unknown_route_is_json(client):
    resp = client.get('/api/nope?x=1')
    assert resp.status_code == 404
    assert resp.get_json() == {'message': 'Route not found', 'method': 'GET', 'path': '/api/nope?x=1'}


def test_wrong_method_is_json(client):
    resp = client.delete('/api/health')
    assert resp.status_code == 405
    assert resp.get_json()['message']


def test_cors_headers(client):
    resp = client.get('/api/health', headers={'Origin': 'http://localhost:5173'})
    assert resp.headers.get('Access-Control-Allow-Origin')


def test_server_errors_hide_details_outside_development(app):
    @app.route('/boom')
    def boom():
        raise RuntimeError('secret detail')

    resp = app.test_client().get('/boom')
    assert resp.status_code == 500
    assert resp.get_json() == {'message': 'Internal server error'}


def test_server_errors_show_details_in_development(tmp_path):
    app = create_app({
        'ENV_NAME': 'development',
        'MONGO_CLIENT': mongomock.MongoClient(),
        'MONGO_DB_NAME': 'shoeverse_dev',
        'UPLOAD_FOLDER': str(tmp_path),
    })

    @app.route('/boom')
    def boom():
        raise RuntimeError('secret detail')

    assert app.test_client().get('/boom').get_json()['error'] == 'secret detail'


def test_api_error_payload(app):
    @app.route('/teapot')
    def teapot():
        raise ApiError('short and stout', 418, {'hint': 'tip me over'})

    resp = app.test_client().get('/teapot')
    assert resp.status_code == 418
    assert resp.get_json() == {'message': 'short and stout', 'hint': 'tip me over'}
