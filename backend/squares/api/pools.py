from flask import Blueprint, jsonify, request, current_app
from flask_login import login_required, current_user

from squares.models import Pool
from squares.services.pools.audit import pool_audit_log
from squares.services.pools.digits import lock_pool
from squares.services.pools.grid import (
    EDITABLE_SETTINGS,
    add_member,
    create_pool,
    get_pool,
    grid_view,
    mark_deadbeat,
    pool_members,
    pool_stats,
    reinstate_member,
    remove_member,
    set_pool_status,
    update_pool,
)
from squares.services.pools.ledger import pool_payment_summary, record_buy_in, record_tip, set_payment_status
from squares.services.pools.payouts import payout_breakdown
from squares.services.pools.score_feed import sync_pool_score
from squares.services.pools.sports import period_key, period_labels
from squares.services.pools.winners import enter_score, finish_pool, pool_scores, pool_winners
from . import json_body, parse_int, require_fields

pools = Blueprint('pools', __name__)

POOL_SETTINGS = (
    'sport',
    'payout_structure',
    'tip_pct',
    'max_per_player',
    'approval_threshold',
    'ot_rule',
    'game_label',
    'external_game_id',
)
INT_SETTINGS = ('tip_pct', 'max_per_player', 'approval_threshold')


def _own_pool(pool_id: int) -> Pool:
    return get_pool(pool_id, admin_id=current_user.id)


def pool_detail(pool: Pool) -> dict:
    payload = pool.to_dict()
    payload['stats'] = pool_stats(pool)
    payload['periods'] = [
        {'period_key': period_key(i), 'period_label': label}
        for i, label in enumerate(period_labels(pool.sport, pool.ot_rule))
    ]
    payload['scores'] = [s.to_dict() for s in pool_scores(pool.id)]
    payload['winners'] = [w.to_dict() for w in pool_winners(pool.id)]
    return payload


@pools.route('', methods=['GET'])
@login_required
def list_pools():
    rows = Pool.query.filter_by(admin_id=current_user.id).order_by(Pool.created_at.desc()).all()
    return jsonify([dict(pool.to_dict(), stats=pool_stats(pool)) for pool in rows])


@pools.route('', methods=['POST'])
@login_required
def create_pool_route():
    data = json_body()
    name, away_team, home_team, denomination = require_fields(data, 'name', 'away_team', 'home_team', 'denomination')
    settings = {key: data[key] for key in POOL_SETTINGS if data.get(key) is not None}
    for key in INT_SETTINGS:
        if key in settings:
            settings[key] = parse_int(settings[key], key)
    pool = create_pool(
        current_user.id,
        name=name,
        away_team=away_team,
        home_team=home_team,
        denomination=parse_int(denomination, 'denomination'),
        **settings,
    )
    return jsonify(pool_detail(pool)), 201


@pools.route('/<int:pool_id>', methods=['GET'])
@login_required
def get_pool_route(pool_id):
    pool = _own_pool(pool_id)
    payload = pool_detail(pool)
    payload['grid'] = grid_view(pool.id)
    return jsonify(payload)


@pools.route('/<int:pool_id>', methods=['PATCH'])
@login_required
def update_pool_route(pool_id):
    _own_pool(pool_id)
    data = json_body()
    changes = {key: data[key] for key in EDITABLE_SETTINGS if key in data}
    for key in INT_SETTINGS:
        if key in changes:
            changes[key] = parse_int(changes[key], key)
    pool = update_pool(pool_id, current_user.id, **changes)
    return jsonify(pool_detail(pool))


@pools.route('/<int:pool_id>/lock', methods=['POST'])
@login_required
def lock_pool_route(pool_id):
    _own_pool(pool_id)
    pool = lock_pool(pool_id, current_user.id)
    return jsonify(pool.to_dict())


@pools.route('/<int:pool_id>/status', methods=['POST'])
@login_required
def set_status_route(pool_id):
    _own_pool(pool_id)
    (status,) = require_fields(json_body(), 'status')
    if status == 'final':
        pool = finish_pool(pool_id, current_user.id)
    else:
        pool = set_pool_status(pool_id, status, current_user.id)
    return jsonify(pool.to_dict())


@pools.route('/<int:pool_id>/payouts', methods=['GET'])
@login_required
def payouts_route(pool_id):
    return jsonify(payout_breakdown(_own_pool(pool_id)))


@pools.route('/<int:pool_id>/scores', methods=['GET'])
@login_required
def list_scores(pool_id):
    _own_pool(pool_id)
    return jsonify([s.to_dict() for s in pool_scores(pool_id)])


@pools.route('/<int:pool_id>/scores', methods=['POST'])
@login_required
def enter_score_route(pool_id):
    pool = _own_pool(pool_id)
    data = json_body()
    key, away, home = require_fields(data, 'period_key', 'away_score', 'home_score')
    valid_keys = [period_key(i) for i in range(len(period_labels(pool.sport, pool.ot_rule)))]
    if key not in valid_keys:
        return jsonify({'error': 'bad_request', 'message': f"period_key must be one of {', '.join(valid_keys)}"}), 400
    payout_pct = data.get('payout_pct')
    score, result = enter_score(
        pool_id,
        key,
        parse_int(away, 'away_score', minimum=0),
        parse_int(home, 'home_score', minimum=0),
        payout_pct=parse_int(payout_pct, 'payout_pct', 0, 100) if payout_pct is not None else None,
        period_label=data.get('period_label'),
        actor_id=current_user.id,
        game_over=bool(data.get('game_over', False)),
    )
    return jsonify({
        'score': score.to_dict(),
        'winner': result.to_dict() if result else None,
    }), 201


@pools.route('/<int:pool_id>/winners', methods=['GET'])
@login_required
def list_winners(pool_id):
    _own_pool(pool_id)
    return jsonify([w.to_dict() for w in pool_winners(pool_id)])


@pools.route('/<int:pool_id>/sync', methods=['POST'])
@login_required
def sync_score_route(pool_id):
    pool = _own_pool(pool_id)
    if not pool.external_game_id:
        return jsonify({'error': 'bad_request', 'message': 'Pool is not linked to a game'}), 400
    entered = sync_pool_score(pool_id)
    return jsonify({'entered': entered})


@pools.route('/<int:pool_id>/audit', methods=['GET'])
@login_required
def audit_route(pool_id):
    _own_pool(pool_id)
    limit = parse_int(request.args.get('limit', 100), 'limit', 1, 1000)
    return jsonify([entry.to_dict() for entry in pool_audit_log(pool_id, limit=limit)])


@pools.route('/<int:pool_id>/payments', methods=['POST'])
@login_required
def record_payment(pool_id):
    _own_pool(pool_id)
    player_id, squares = require_fields(json_body(), 'player_id', 'squares')
    entry = record_buy_in(
        pool_id,
        parse_int(player_id, 'player_id'),
        parse_int(squares, 'squares', 1, 100),
        current_user.id,
    )
    current_app.logger.info(f"[payment] pool={pool_id} player={entry.player_id} amount={-entry.amount}")
    return jsonify(entry.to_dict()), 201


@pools.route('/<int:pool_id>/tips', methods=['POST'])
@login_required
def record_tip_route(pool_id):
    _own_pool(pool_id)
    player_id, amount = require_fields(json_body(), 'player_id', 'amount')
    entry = record_tip(pool_id, parse_int(player_id, 'player_id'), parse_int(amount, 'amount', minimum=1), current_user.id)
    return jsonify(entry.to_dict()), 201


@pools.route('/<int:pool_id>/payments/summary', methods=['GET'])
@login_required
def payment_summary_route(pool_id):
    _own_pool(pool_id)
    return jsonify(pool_payment_summary(pool_id))


@pools.route('/<int:pool_id>/players', methods=['GET'])
@login_required
def list_members(pool_id):
    _own_pool(pool_id)
    return jsonify(pool_members(pool_id))


@pools.route('/<int:pool_id>/players', methods=['POST'])
@login_required
def add_member_route(pool_id):
    _own_pool(pool_id)
    (player_id,) = require_fields(json_body(), 'player_id')
    member = add_member(pool_id, parse_int(player_id, 'player_id'), current_user.id)
    return jsonify(member.to_dict()), 201


@pools.route('/<int:pool_id>/players/<int:player_id>', methods=['PATCH'])
@login_required
def update_member_route(pool_id, player_id):
    _own_pool(pool_id)
    data = json_body()
    paid = data.get('paid')
    if paid is not None and not isinstance(paid, bool):
        return jsonify({'error': 'bad_request', 'message': 'paid must be true or false'}), 400
    member = set_payment_status(pool_id, player_id, current_user.id, paid=paid, payment_status=data.get('payment_status'))
    return jsonify(member.to_dict())


@pools.route('/<int:pool_id>/players/<int:player_id>', methods=['DELETE'])
@login_required
def remove_member_route(pool_id, player_id):
    _own_pool(pool_id)
    released = remove_member(pool_id, player_id, current_user.id)
    return jsonify({'player_id': player_id, 'squares_released': released})


@pools.route('/<int:pool_id>/players/<int:player_id>/deadbeat', methods=['POST'])
@login_required
def deadbeat_route(pool_id, player_id):
    _own_pool(pool_id)
    released = mark_deadbeat(pool_id, player_id, current_user.id)
    return jsonify({'player_id': player_id, 'payment_status': 'deadbeat', 'squares_released': released})


@pools.route('/<int:pool_id>/players/<int:player_id>/reinstate', methods=['POST'])
@login_required
def reinstate_route(pool_id, player_id):
    _own_pool(pool_id)
    return jsonify(reinstate_member(pool_id, player_id, current_user.id).to_dict())
