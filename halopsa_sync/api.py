"""
HaloPSA Sync API Server

Flask app exposing the sync engine to the front end. Every request is a POST
with a JSON body naming an `action`; responses are
`{success, message, ...}` on success and `{error, details?}` on failure.
"""

import logging
from typing import Callable, Optional

from flask import Blueprint, Flask, current_app, jsonify, request
from flask_cors import CORS

from .config import Config, config as default_config
from .exceptions import HaloSyncError
from .sync_engine import SyncEngine, get_engine

logger = logging.getLogger(__name__)

halopsa_bp = Blueprint('halopsa', __name__)
health_bp = Blueprint('health', __name__)


# action -> handler(engine, body)
ACTIONS: dict[str, Callable[[SyncEngine, dict], dict]] = {
    'pushProjectUpdate': lambda e, b: e.push_project_update(b.get('projectId')),
    'pushTaskUpdate': lambda e, b: e.push_task_update(b.get('taskId')),
    'pullTicketUpdate': lambda e, b: e.pull_ticket_update(b.get('ticketId')),
    'fullSync': lambda e, b: e.full_sync(b.get('projectId')),
    'create': lambda e, b: e.create_ticket(
        project_id=b.get('projectId'),
        summary=b.get('summary'),
        details=b.get('details'),
        client_ref=b.get('clientId'),
        client_name=b.get('clientName'),
    ),
    'link': lambda e, b: e.link_ticket(b.get('projectId'), b.get('ticketId')),
    'unlink': lambda e, b: e.unlink_ticket(b.get('projectId')),
    'addNote': lambda e, b: e.add_note(b.get('ticketId'), b.get('note'), b.get('noteIsPrivate')),
    'updateTicket': lambda e, b: e.update_ticket(
        b.get('ticketId'),
        status=b.get('status'),
        new_summary=b.get('newSummary'),
        new_details=b.get('newDetails'),
    ),
    'getTicket': lambda e, b: e.get_ticket(b.get('ticketId')),
    'testConnection': lambda e, b: e.test_connection(),
    'checkEnvStatus': lambda e, b: e.env_status(),
    'listClients': lambda e, b: e.list_clients(),
}


def _engine() -> SyncEngine:
    return current_app.extensions['halopsa_sync_engine']


@halopsa_bp.route('/halopsa', methods=['POST'])
def handle_action():
    """
    Run one sync or ticket-management action.

    Body:
        action: one of ACTIONS
        projectId, taskId, ticketId, summary, details, clientId, clientName,
        note, noteIsPrivate, status, newSummary, newDetails: per action
    """
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        return jsonify({'error': 'Request body must be a JSON object'}), 400

    action = body.get('action')
    handler = ACTIONS.get(action)
    if handler is None:
        return jsonify({
            'error': 'Invalid action',
            'details': f"Use one of: {', '.join(ACTIONS)}",
        }), 400

    try:
        return jsonify(handler(_engine(), body))
    except HaloSyncError as e:
        logger.warning(f"HaloPSA action {action} failed: {e.message}")
        return jsonify(e.to_dict()), e.status_code
    except Exception as e:
        logger.exception(f"HaloPSA action {action} crashed")
        return jsonify({'error': str(e) or e.__class__.__name__}), 500


@health_bp.route('/health')
def health_check():
    """Basic health check endpoint."""
    return jsonify({
        'status': 'healthy',
        'service': 'halopsa-sync'
    })


def create_app(engine: Optional[SyncEngine] = None, settings: Optional[Config] = None) -> Flask:
    """Build the Flask app around a sync engine."""
    settings = settings or default_config
    app = Flask(__name__)
    app.extensions['halopsa_sync_engine'] = engine or get_engine()

    CORS(app, resources={r"/api/*": {"origins": settings.CORS_ALLOWED_ORIGINS}})

    if not settings.API_KEY:
        if settings.ENV == 'prd':
            logger.critical("HALOPSA_SYNC_API_KEY is not set! API is running WITHOUT authentication in PRODUCTION.")
        else:
            logger.warning("HALOPSA_SYNC_API_KEY is not set. API authentication is disabled (dev mode).")

    @app.before_request
    def check_api_key():
        """Require X-API-Key on /api/* when a key is configured."""
        if not request.path.startswith('/api/'):
            return None
        if request.method == 'OPTIONS' or not settings.API_KEY:
            return None

        provided_key = request.headers.get('X-API-Key')
        if not provided_key or provided_key != settings.API_KEY:
            return jsonify({'error': 'Invalid or missing API key'}), 401

        return None

    app.register_blueprint(health_bp)
    app.register_blueprint(halopsa_bp, url_prefix='/api/v1')

    return app
