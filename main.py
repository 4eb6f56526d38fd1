"""Demo server: a small Flask app wrapped by the access log middleware."""

import logging
import sys
import time

from flask import Flask, jsonify, request

from accesslog.app import build_app
from accesslog.config import load_config
from accesslog.wsgi import wsgi_handler

logger = logging.getLogger(__name__)


def create_demo_app() -> Flask:
    app = Flask(__name__)
    # Let handler exceptions reach the middleware instead of Flask's own 500 page.
    app.config["PROPAGATE_EXCEPTIONS"] = True

    @app.route("/")
    def index():
        return "<html><body><h1>It works</h1></body></html>"

    @app.route("/health")
    def health():
        return jsonify(status="ok")

    @app.route("/slow")
    def slow():
        ms = request.args.get("ms", 250, type=int)
        time.sleep(ms / 1000)
        return jsonify(slept_ms=ms)

    @app.route("/panic")
    def panic():
        raise RuntimeError("demo fault requested by client")

    return app


def main() -> None:
    config = load_config()
    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )

    flask_app = create_demo_app()
    access = build_app(wsgi_handler(flask_app.wsgi_app), config)
    flask_app.wsgi_app = access

    logger.info("Serving on http://%s:%d (access_log=%s, perf_log=%s, error_log=%s)",
                config.host, config.port, config.access_log or "off",
                config.perf_log or "off", config.error_log or "off")
    try:
        flask_app.run(host=config.host, port=config.port, threaded=True)
    finally:
        access.close()
        logger.info("Shutdown complete")


if __name__ == "__main__":
    main()
