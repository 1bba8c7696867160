"""Federated Search API Blueprint.

Endpoints:
  POST   /api/search               - Run a search for one client
  GET    /api/search/history       - Recent queries of a client
  DELETE /api/search/history       - Forget them
  GET    /api/search/cache/stats   - Response cache statistics
  POST   /api/search/cache/clear   - Drop cached responses
  GET    /api/search/categories    - Category tabs for a UI context
"""

from typing import Any, Dict, Optional

from flask import Blueprint, current_app, jsonify, request

from ..log import log
from ..rate_limit import limit_heavy, limit_light, limit_medium
from ..search.items import ORIGIN_LOCAL
from ..search.query_parser import needs_server_fetch, parse_query, with_filters
from ..search.session import DEFAULT_CONTEXT, categories_for_context, count_categories
from ..service import SearchService, run_async
from .validators import (
    MAX_QUERY_LENGTH, sanitize_string, validate_client_id, validate_fields,
    validate_filters, validate_modules, validate_records
)


search_bp = Blueprint('search_api', __name__, url_prefix='/api/search')


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _error(message: str, detail: Optional[str] = None, code: str = 'invalid_request', status: int = 400):
    payload = {'error': message, 'code': code}
    if detail:
        payload['detail'] = detail
    return jsonify(payload), status


def _service() -> SearchService:
    return current_app.extensions['fedsearch']


def _client_key(source: Dict[str, Any]) -> str:
    """Session id, else logged-in user id, else remote address."""
    for field in ('session_id', 'logged_user_id'):
        value = source.get(field)
        if value not in (None, ''):
            return f"{field[0]}:{value}"
    return f"a:{request.remote_addr or 'unknown'}"


def _client_args_error(source: Dict[str, Any]) -> Optional[str]:
    for field in ('session_id', 'logged_user_id'):
        error = validate_client_id(source.get(field), field)
        if error:
            return error
    return None


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


@search_bp.route('', methods=['POST'])
@limit_heavy
def search():
    """
    Run one federated search.

    Payload:
    {
        "query": str,                 # free text + key:value filter tokens
        "category": str,              # 'all' or a module tag
        "context": str,               # UI context ('home', 'files', ...)
        "filters": {str: str},        # extra filters added outside the text
        "local": {"chats": [...], "users": [...]},
        "logged_user_id": str,
        "session_id": str,
        "modules": [str]              # enabled remote modules
    }
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return _error('Invalid JSON body')

    error = validate_fields(data, [('query', str, MAX_QUERY_LENGTH)]) or _client_args_error(data)
    if error:
        return _error('Invalid request', detail=error)

    category = data.get('category') or 'all'
    context = data.get('context') or DEFAULT_CONTEXT
    if not isinstance(category, str) or not isinstance(context, str):
        return _error('Invalid request', detail="Fields 'category' and 'context' must be str")

    filters, error = validate_filters(data.get('filters'))
    if error:
        return _error('Invalid filters', detail=error)
    modules, error = validate_modules(data.get('modules'))
    if error:
        return _error('Invalid modules', detail=error)

    local = data.get('local')
    if local is not None and not isinstance(local, dict):
        return _error('Invalid local data', detail="Field 'local' must be object")
    chats, error = validate_records((local or {}).get('chats'), 'local.chats')
    if not error:
        users, error = validate_records((local or {}).get('users'), 'local.users')
    if error:
        return _error('Invalid local data', detail=error)

    logged_user_id = data.get('logged_user_id')
    logged_user_id = str(logged_user_id) if logged_user_id not in (None, '') else None
    query = sanitize_string(data['query'], MAX_QUERY_LENGTH)

    service = _service()
    client = service.client(_client_key(data))
    coordinator = client.coordinator
    session = client.session

    if local is not None:
        coordinator.dataset.replace(chats, users)
    coordinator.enabled_modules = modules if modules is not None else list(service.settings.enabled_modules)

    # Concurrent requests share the client's session; the query stays local
    parsed = with_filters(query, filters) if filters else parse_query(query)
    if context != session.context:
        session.set_context(context)
    remote = needs_server_fetch(parsed, service.settings.min_server_length)
    outcome = run_async(session.run(
        coordinator, logged_user_id=logged_user_id, remote=remote,
        parsed_query=parsed, category=category,
    ))

    if outcome is None:
        log(f"❌ Search failed for '{parsed.trimmed}': {session.error}")
        return _error('Search failed', detail=session.error, code='search_failed', status=500)

    if outcome.aborted:
        return jsonify({
            'results': [],
            'count': 0,
            'partial_count': 0,
            'from_cache': False,
            'aborted': True,
            'query': parsed.to_dict(),
        })

    results = outcome.results
    return jsonify({
        'results': [item.to_dict() for item in results],
        'count': len(results),
        'partial_count': sum(1 for item in results if item.origin == ORIGIN_LOCAL),
        'from_cache': outcome.from_cache,
        'aborted': False,
        'query': parsed.to_dict(),
        'category_counts': count_categories(results),
    })


@search_bp.route('/history', methods=['GET'])
@limit_light
def get_history():
    error = _client_args_error(request.args)
    if error:
        return _error('Invalid request', detail=error)
    history = _service().history_for(_client_key(request.args))
    return jsonify({'history': history.items()})


@search_bp.route('/history', methods=['DELETE'])
@limit_medium
def clear_history():
    error = _client_args_error(request.args)
    if error:
        return _error('Invalid request', detail=error)
    _service().history_for(_client_key(request.args)).clear()
    return jsonify({'status': 'cleared', 'history': []})


@search_bp.route('/cache/stats', methods=['GET'])
@limit_light
def cache_stats():
    service = _service()
    session_id = request.args.get('session_id')
    if session_id:
        error = validate_client_id(session_id)
        if error:
            return _error('Invalid request', detail=error)
        client = service.existing_client(_client_key(request.args))
        if client is None:
            return _error('Unknown session', code='not_found', status=404)
        return jsonify(client.coordinator.cache.stats())
    return jsonify(service.cache_stats())


@search_bp.route('/cache/clear', methods=['POST'])
@limit_medium
def clear_cache():
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        return _error('Invalid JSON body')
    session_id = data.get('session_id')
    error = validate_client_id(session_id)
    if error:
        return _error('Invalid request', detail=error)

    client_key = _client_key(data) if session_id else None
    cleared = _service().clear_caches(client_key)
    log(f"🧹 Cleared {cleared} response caches")
    return jsonify({'status': 'cleared', 'cleared': cleared})


@search_bp.route('/categories', methods=['GET'])
@limit_light
def categories():
    context = request.args.get('context') or DEFAULT_CONTEXT
    return jsonify({'context': context, 'categories': categories_for_context(context)})
