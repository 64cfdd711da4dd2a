"""
ShoeVerse Storefront API

Run with `python app.py` or `flask --app app run`.
Seed demo data with `flask --app app seed --with-orders`.
"""

from shoeverse import __version__, create_app

app = create_app()


if __name__ == '__main__':
    port = app.config['PORT']
    print("=" * 50)
    print(f"ShoeVerse Storefront API v{__version__}")
    print("=" * 50)
    print(f"Running on port: {port}")
    print("Health check: /api/health")
    print("Products API: /api/products")
    print(f"Uploads folder: {app.config['UPLOAD_FOLDER']}")
    print("=" * 50)
    app.run(host='0.0.0.0', port=port, debug=app.config['ENV_NAME'] == 'development')
