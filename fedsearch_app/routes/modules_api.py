from flask import Blueprint, current_app, jsonify

from ..log import log
from ..rate_limit import limit_light, limit_medium

modules_bp = Blueprint('modules_api', __name__, url_prefix='/api/modules')


def _registry():
    return current_app.extensions['fedsearch'].registry


@modules_bp.route('', methods=['GET'])
@limit_light
def modules_health():
    """Get health status of all remote modules."""
    return jsonify(_registry().get_health_report())


@modules_bp.route('/reset', methods=['POST'])
@limit_medium
def reset_all_modules():
    """Reset every module's error state."""
    registry = _registry()
    registry.reset()
    log(f"🔄 Reset {len(registry)} modules")
    return jsonify({'status': 'ok'})


@modules_bp.route('/<module>/reset', methods=['POST'])
@limit_medium
def reset_module(module: str):
    """Reset a module's error state."""
    if _registry().reset(module):
        log(f"🔄 Reset {module}")
        return jsonify({'status': 'ok'})
    return jsonify({'status': 'error', 'error': 'Module not found', 'code': 'not_found'}), 404
