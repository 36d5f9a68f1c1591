from flask import Blueprint, jsonify
from flask_login import login_required, current_user

from squares.services.pools.claims import (
    approve_player_requests,
    approve_square,
    assign_square,
    claim_square,
    pending_requests,
    reject_player_requests,
    reject_square,
    release_square,
    swap_squares,
)
from squares.services.pools.grid import get_pool, grid_view
from . import json_body, parse_cell, parse_int, require_fields

# Admin-side square management, mounted under /api/pools/<pool_id>/squares
squares = Blueprint('squares', __name__)


@squares.before_request
@login_required
def _require_admin():
    return None


def _own_pool(pool_id):
    return get_pool(pool_id, admin_id=current_user.id)


@squares.route('', methods=['GET'])
def get_grid(pool_id):
    _own_pool(pool_id)
    return jsonify(grid_view(pool_id))


@squares.route('/pending', methods=['GET'])
def list_pending(pool_id):
    _own_pool(pool_id)
    return jsonify([sq.to_dict() for sq in pending_requests(pool_id)])


@squares.route('/claim', methods=['POST'])
def claim(pool_id):
    _own_pool(pool_id)
    data = json_body()
    row, col = parse_cell(data)
    (player_id,) = require_fields(data, 'player_id')
    outcome = claim_square(pool_id, row, col, parse_int(player_id, 'player_id'), current_user.id, 'admin')
    return jsonify(outcome.to_dict()), 201


@squares.route('/release', methods=['POST'])
def release(pool_id):
    _own_pool(pool_id)
    row, col = parse_cell(json_body())
    result = release_square(pool_id, row, col, current_user.id, 'admin')
    return jsonify(result.to_dict())


@squares.route('/assign', methods=['POST'])
def assign(pool_id):
    _own_pool(pool_id)
    data = json_body()
    row, col = parse_cell(data)
    (player_id,) = require_fields(data, 'player_id')
    outcome = assign_square(pool_id, row, col, parse_int(player_id, 'player_id'), current_user.id)
    return jsonify(outcome.to_dict())


@squares.route('/swap', methods=['POST'])
def swap(pool_id):
    _own_pool(pool_id)
    data = json_body()
    square_a = parse_cell(data, 'row_a', 'col_a')
    square_b = parse_cell(data, 'row_b', 'col_b')
    owner_a, owner_b = swap_squares(pool_id, square_a, square_b, current_user.id)
    return jsonify({
        'square_a': {'row': square_a[0], 'col': square_a[1], 'player_id': owner_a},
        'square_b': {'row': square_b[0], 'col': square_b[1], 'player_id': owner_b},
    })


@squares.route('/approve', methods=['POST'])
def approve(pool_id):
    _own_pool(pool_id)
    row, col = parse_cell(json_body())
    player_id = approve_square(pool_id, row, col, current_user.id)
    return jsonify({'row': row, 'col': col, 'player_id': player_id, 'status': 'claimed'})


@squares.route('/reject', methods=['POST'])
def reject(pool_id):
    _own_pool(pool_id)
    row, col = parse_cell(json_body())
    player_id = reject_square(pool_id, row, col, current_user.id)
    return jsonify({'row': row, 'col': col, 'player_id': player_id, 'status': 'available'})


@squares.route('/approve-player', methods=['POST'])
def approve_player(pool_id):
    _own_pool(pool_id)
    (player_id,) = require_fields(json_body(), 'player_id')
    settled = approve_player_requests(pool_id, parse_int(player_id, 'player_id'), current_user.id)
    return jsonify({'approved': settled})


@squares.route('/reject-player', methods=['POST'])
def reject_player(pool_id):
    _own_pool(pool_id)
    (player_id,) = require_fields(json_body(), 'player_id')
    settled = reject_player_requests(pool_id, parse_int(player_id, 'player_id'), current_user.id)
    return jsonify({'rejected': settled})
