#!/usr/bin/env python3
"""
Flask surface for newsharvest: the /news search endpoint, a health check and
the optional static search page.
"""

import logging
import os
from datetime import datetime, timezone
from functools import wraps
from typing import Optional, Sequence

from flask import Flask, Response, jsonify, request, send_from_directory

from cors_config import configure_cors
from database import DatabaseError
from newsharvest.query.news_search import NewsQueryService

logger = logging.getLogger(__name__)


def add_security_headers(response):
    """Add basic security headers"""
    response.headers['X-Content-Type-Options'] = 'nosniff'
    response.headers['X-Frame-Options'] = 'DENY'
    response.headers['Referrer-Policy'] = 'strict-origin-when-cross-origin'
    return response


def plain_text_errors(f):
    """Report any failure as a 500 with the cause as plain text; never partial results"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except DatabaseError as e:
            logger.error(f"Database error in {f.__name__}: {e}")
            return Response(str(e), status=500, mimetype='text/plain')
        except Exception as e:
            logger.error(f"Unexpected error in {f.__name__}: {e}", exc_info=True)
            return Response(str(e), status=500, mimetype='text/plain')
    return decorated_function


def create_app(
    query_service: NewsQueryService,
    *,
    public_dir: Optional[str] = None,
    cors_origins: Optional[Sequence[str]] = None,
    rule_count: int = 0,
) -> Flask:
    app = Flask(__name__, static_folder=None)
    app.after_request(add_security_headers)
    if cors_origins:
        configure_cors(app, cors_origins)

    @app.route('/news')
    @app.route('/news/')
    @plain_text_errors
    def search_news():
        """Titles containing ?q= (everything when q is missing or empty), newest first"""
        term = request.args.get('q', '')
        items = query_service.handle(term)
        return jsonify(items)

    @app.route('/api/health')
    def health_check():
        try:
            count = query_service.item_count()
        except DatabaseError as e:
            logger.error(f"Health check failed: {e}")
            return jsonify({'status': 'unavailable', 'error': str(e)}), 503
        return jsonify({
            'status': 'healthy',
            'items': count,
            'rules': rule_count,
            'timestamp': datetime.now(timezone.utc).isoformat(),
        })

    if public_dir and os.path.isdir(public_dir):
        root = os.path.abspath(public_dir)

        @app.route('/', defaults={'path': ''})
        @app.route('/<path:path>')
        def serve(path):
            """Serve the static search page"""
            if path != "" and os.path.isfile(os.path.join(root, path)):
                return send_from_directory(root, path)
            return send_from_directory(root, 'index.html')

    return app
