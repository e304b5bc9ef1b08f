# CORS configuration
import logging
from typing import Sequence

from flask import request
from flask_cors import CORS

logger = logging.getLogger(__name__)


def configure_cors(app, origins: Sequence[str]):
    # Read-only endpoints; lets a separately served search client call the API
    CORS(app, resources={
        r"/news*": {"origins": list(origins), "methods": ["GET", "OPTIONS"]},
        r"/api/*": {"origins": list(origins), "methods": ["GET", "OPTIONS"]},
    })

    @app.after_request
    def log_cors(response):
        origin = request.headers.get('Origin')
        if origin:
            logger.debug(f"CORS - Origin: {origin} {request.method} {request.path} -> {response.status_code}")
        return response

    return app
