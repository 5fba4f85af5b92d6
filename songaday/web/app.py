"""Flask web application for the Spotify authorisation flow"""

import logging
import secrets
import threading
from flask import Flask, jsonify, make_response, redirect, request


logger = logging.getLogger(__name__)

NOTIFY_COOKIE = "notify_ref"


def create_app(engine, config: dict = None):
    """Create and configure Flask app.

    Args:
        engine: SongADayEngine handling authorisations
        config: Optional Flask configuration overrides

    Returns:
        Configured Flask app
    """
    app = Flask(__name__)

    if config:
        app.config.update(config)

    @app.route('/authorise')
    def authorise():
        """Send the user to Spotify, remembering where to notify them"""
        state = secrets.token_urlsafe(12)
        response = redirect(engine.auth.authorize_url(state))
        notify_ref = request.args.get('notify')
        if notify_ref:
            response.set_cookie(NOTIFY_COOKIE, notify_ref, httponly=True, samesite='Lax')
        return response

    @app.route('/callback')
    def callback():
        """OAuth redirect target"""
        code = request.args.get('code')
        if not code:
            error = request.args.get('error', 'missing code')
            logger.warning("Callback without code: %s", error)
            return make_response("Authorisation error", 401)

        notify_ref = request.cookies.get(NOTIFY_COOKIE)
        result = engine.authorise(code, notify_ref)
        return make_response(result.message, result.status)

    @app.route('/api/health')
    def api_health():
        """Scheduler status"""
        try:
            from songaday.web.health import get_scheduler_stats
            return jsonify({
                'status': 'healthy',
                **get_scheduler_stats(engine)
            })
        except Exception as e:
            logger.error("Error in health endpoint: %s", e)
            return jsonify({
                'status': 'error',
                'message': str(e)
            }), 500

    return app


def start_web_server(engine, port: int = 5000, threaded: bool = True):
    """Start the web server.

    Args:
        engine: SongADayEngine handling authorisations
        port: Port to listen on
        threaded: If True, start in background thread; if False, run in current thread

    Returns:
        Thread object if threaded=True, None otherwise
    """
    app = create_app(engine)
    logger.info("🌐 Starting web server on port %d", port)

    if threaded:
        thread = threading.Thread(
            target=lambda: app.run(host='0.0.0.0', port=port, debug=False, use_reloader=False),
            daemon=True
        )
        thread.start()
        return thread
    else:
        app.run(host='0.0.0.0', port=port, debug=False, use_reloader=False)
        return None
