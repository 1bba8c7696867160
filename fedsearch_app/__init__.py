# Load environment variables FIRST before any other imports
from dotenv import load_dotenv
load_dotenv()

import time
import uuid
from typing import Any, Dict, Optional
from flask import Flask, jsonify, request, g


def create_app(config: Optional[Dict[str, Any]] = None, service=None):
    """
    Create and configure an instance of the Flask application.

    Args:
        config: Extra Flask config (applied after environment settings)
        service: Prebuilt SearchService (tests); built from env when None
    """
    app = Flask(__name__, instance_relative_config=True)

    # =============================================================================
    # CONFIGURATION
    # =============================================================================
    from .config import SearchSettings, flask_settings

    app.config.from_mapping(JSON_SORT_KEYS=False)
    app.config.update(flask_settings())
    if config:
        app.config.update(config)

    # =============================================================================
    # LOGGING and RATE LIMITING
    # =============================================================================
    from .log import log, debug_log_event
    from .rate_limit import init_rate_limiting

    init_rate_limiting(app)

    @app.before_request
    def assign_request_id():
        g.request_id = uuid.uuid4().hex[:12]
        g.request_start = time.time()

    @app.after_request
    def debug_request_log(response):
        duration_ms = None
        start_time = getattr(g, 'request_start', None)
        if start_time:
            duration_ms = int((time.time() - start_time) * 1000)
        debug_log_event({
            'event': 'request',
            'request_id': getattr(g, 'request_id', None),
            'method': request.method,
            'path': request.path,
            'status': response.status_code,
            'duration_ms': duration_ms,
            'remote_addr': request.remote_addr,
        })
        response.headers['X-Request-ID'] = getattr(g, 'request_id', '')
        return response

    @app.teardown_request
    def debug_exception_log(error=None):
        if not error:
            return
        debug_log_event({
            'event': 'exception',
            'request_id': getattr(g, 'request_id', None),
            'path': request.path,
            'error_type': error.__class__.__name__,
            'error': str(error)
        })

    @app.errorhandler(404)
    def not_found(error):
        return jsonify({'error': 'Not found', 'code': 'not_found'}), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({'error': 'Method not allowed', 'code': 'method_not_allowed'}), 405

    # =============================================================================
    # SEARCH SERVICE
    # =============================================================================
    from .service import SearchService

    if service is None:
        service = SearchService(SearchSettings.from_env())
    app.extensions['fedsearch'] = service

    @app.route('/api/health')
    def health():
        return jsonify({
            'status': 'ok',
            'modules': service.registry.get_health(),
            'clients': len(service),
            'store': 'redis' if service.store.is_redis else 'memory',
        })

    # =============================================================================
    # BLUEPRINTS & ROUTES
    # =============================================================================
    from .routes.search_api import search_bp
    from .routes.modules_api import modules_bp

    app.register_blueprint(search_bp)
    app.register_blueprint(modules_bp)

    modules = service.registry.modules
    log(f"🔎 FedSearch ready: {len(modules)} remote modules"
        + (f" ({', '.join(modules)})" if modules else ""))
    if app.config.get('DEBUG'):
        log("⚠️  Debug mode is ON - do not use in production!")

    return app

# App instance should be created by the caller (run.py or WSGI entrypoint)
