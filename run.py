import logging

from flask import Flask
from flask_compress import Compress
from app.routes.player import player_bp
from app.routes.proxy import proxy_bp
from app.routes.utils import respond_with
from config import Config
from version import __version__

app = Flask(__name__)
app.config.from_object('config.Config')

app.register_blueprint(proxy_bp)
app.register_blueprint(player_bp)

Compress(app)


@app.route('/')
def index():
    """
    Health check
    """
    return respond_with({'name': 'superflix-proxy', 'version': __version__, 'status': 'ok'})


if __name__ == '__main__':
    from waitress import serve
    import sys

    # Configure logging to stdout
    logging.basicConfig(
        format='%(asctime)s %(levelname)s: %(message)s',
        level=logging.INFO,
        stream=sys.stdout,
        force=True
    )

    logging.info(f"Starting Superflix proxy v{__version__} on http://{Config.FLASK_HOST}:{Config.FLASK_PORT}")
    serve(app, host=Config.FLASK_HOST, port=int(Config.FLASK_PORT))
