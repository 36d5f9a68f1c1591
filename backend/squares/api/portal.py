from flask import Blueprint, jsonify

from squares.models import Player
from squares.services.pools.claims import claim_square, release_square
from squares.services.pools.errors import PlayerNotFound
from squares.services.pools.grid import get_pool, grid_view, member_pools, player_squares, pool_stats, require_member
from squares.services.pools.ledger import paid_square_count, player_balance, player_entries
from squares.services.pools.payouts import payout_breakdown
from squares.services.pools.winners import pool_scores, pool_winners
from . import json_body, parse_cell

# Player-facing routes; the token in the URL identifies the player
portal = Blueprint('portal', __name__)


def _player_for(token: str) -> Player:
    player = Player.query.filter_by(auth_token=token).first()
    if player is None or player.banned:
        raise PlayerNotFound()
    return player


@portal.route('/<string:token>', methods=['GET'])
def portal_home(token):
    player = _player_for(token)
    pools = member_pools(player.id)
    return jsonify({
        'player': player.to_dict(),
        'balance': player_balance(player.id),
        'pools': [
            dict(pool.to_dict(), my_squares=[sq.to_dict() for sq in player_squares(pool.id, player.id)])
            for pool in pools
        ],
    })


@portal.route('/<string:token>/pools/<int:pool_id>', methods=['GET'])
def portal_pool(token, pool_id):
    player = _player_for(token)
    pool = get_pool(pool_id)
    member = require_member(pool.id, player.id)
    payload = pool.to_dict()
    payload.update({
        'stats': pool_stats(pool),
        'grid': grid_view(pool.id),
        'payouts': payout_breakdown(pool),
        'scores': [s.to_dict() for s in pool_scores(pool.id)],
        'winners': [w.to_dict() for w in pool_winners(pool.id)],
        'my_squares': [sq.to_dict() for sq in player_squares(pool.id, player.id)],
        'paid_squares': paid_square_count(pool, player.id),
        'payment_status': member.payment_status,
    })
    return jsonify(payload)


@portal.route('/<string:token>/pools/<int:pool_id>/claim', methods=['POST'])
def portal_claim(token, pool_id):
    player = _player_for(token)
    row, col = parse_cell(json_body())
    outcome = claim_square(pool_id, row, col, player.id, player.id, 'player')
    return jsonify(outcome.to_dict()), 201


@portal.route('/<string:token>/pools/<int:pool_id>/release', methods=['POST'])
def portal_release(token, pool_id):
    player = _player_for(token)
    row, col = parse_cell(json_body())
    result = release_square(pool_id, row, col, player.id, 'player')
    return jsonify(result.to_dict())


@portal.route('/<string:token>/ledger', methods=['GET'])
def portal_ledger(token):
    player = _player_for(token)
    return jsonify({
        'balance': player_balance(player.id),
        'entries': [e.to_dict() for e in player_entries(player.id)],
    })
