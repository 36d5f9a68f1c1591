from flask import current_app, jsonify, request
from werkzeug.exceptions import BadRequest

from squares.services.pools.errors import InvalidDigitMapping, PoolError

NOT_FOUND_KINDS = {'pool_not_found', 'player_not_found', 'square_not_found'}
FORBIDDEN_KINDS = {'not_pool_member'}
CONFLICT_KINDS = {
    'square_unavailable',
    'already_locked',
    'capacity_exceeded',
    'square_pending',
    'square_not_pending',
}


def status_for(error: PoolError) -> int:
    if error.kind in NOT_FOUND_KINDS:
        return 404
    if error.kind in FORBIDDEN_KINDS:
        return 403
    if error.kind in CONFLICT_KINDS:
        return 409
    return 400


def register_error_handlers(flask_app) -> None:
    @flask_app.errorhandler(PoolError)
    def handle_pool_error(error):
        current_app.logger.info(f"[api] {request.method} {request.path} -> {error.kind}: {error}")
        return jsonify(error.to_dict()), status_for(error)

    @flask_app.errorhandler(InvalidDigitMapping)
    def handle_digit_mapping(error):
        current_app.logger.error(f"[api] pool={error.pool_id} corrupt digit permutation: {error}")
        return jsonify({'error': 'invalid_digit_mapping', 'message': 'Pool digits are corrupt; contact support'}), 500

    @flask_app.errorhandler(BadRequest)
    def handle_bad_request(error):
        return jsonify({'error': 'bad_request', 'message': error.description}), 400


def json_body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def require_fields(data: dict, *names):
    missing = [name for name in names if data.get(name) in (None, '')]
    if missing:
        raise BadRequest(f"Missing required field(s): {', '.join(missing)}")
    return [data[name] for name in names]


def parse_int(value, name: str, minimum=None, maximum=None) -> int:
    if isinstance(value, bool):
        raise BadRequest(f'{name} must be an integer')
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise BadRequest(f'{name} must be an integer') from None
    if minimum is not None and number < minimum:
        raise BadRequest(f'{name} must be at least {minimum}')
    if maximum is not None and number > maximum:
        raise BadRequest(f'{name} must be at most {maximum}')
    return number


def parse_cell(data: dict, row_field: str = 'row', col_field: str = 'col'):
    """Read a (row, col) pair and check both are grid coordinates 0-9."""
    row, col = require_fields(data, row_field, col_field)
    return parse_int(row, row_field, 0, 9), parse_int(col, col_field, 0, 9)
