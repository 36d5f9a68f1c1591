from flask import Blueprint, jsonify, current_app
from flask_login import login_required

from squares import db
from squares.models import Player
from squares.services.pools.errors import PlayerNotFound
from squares.services.pools.ledger import player_balance, player_entries
from . import json_body, require_fields

players = Blueprint('players', __name__)


def _admin_view(player: Player) -> dict:
    payload = player.to_dict()
    payload['portal_url'] = f"{current_app.config.get('FRONTEND_URL', '').rstrip('/')}/p/{player.auth_token}"
    payload['balance'] = player_balance(player.id)
    return payload


def _get_player(player_id: int) -> Player:
    player = db.session.get(Player, player_id)
    if player is None:
        raise PlayerNotFound(player_id=player_id)
    return player


@players.route('', methods=['GET'])
@login_required
def list_players():
    return jsonify([_admin_view(p) for p in Player.query.order_by(Player.name).all()])


@players.route('', methods=['POST'])
@login_required
def create_player():
    data = json_body()
    (name,) = require_fields(data, 'name')
    player = Player(name=name.strip(), phone=data.get('phone'), email=data.get('email'))
    db.session.add(player)
    db.session.commit()
    current_app.logger.info(f"[player] created player={player.id}")
    return jsonify(_admin_view(player)), 201


@players.route('/<int:player_id>', methods=['GET'])
@login_required
def get_player(player_id):
    return jsonify(_admin_view(_get_player(player_id)))


@players.route('/<int:player_id>/ban', methods=['POST'])
@login_required
def ban_player(player_id):
    player = _get_player(player_id)
    player.banned = bool(json_body().get('banned', True))
    db.session.commit()
    current_app.logger.info(f"[player] player={player.id} banned={player.banned}")
    return jsonify(_admin_view(player))


@players.route('/<int:player_id>/ledger', methods=['GET'])
@login_required
def player_ledger(player_id):
    player = _get_player(player_id)
    return jsonify({
        'player_id': player.id,
        'balance': player_balance(player.id),
        'entries': [e.to_dict() for e in player_entries(player.id)],
    })
