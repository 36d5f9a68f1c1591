from typing import Optional

from flask import current_app
from sqlalchemy import func

from squares import db
from squares.models import Player, Pool, PoolPlayer, Score, Square, utcnow
from .audit import log_audit
from .errors import (
    InvalidPoolConfig,
    InvalidStatusTransition,
    NotPoolMember,
    PlayerNotFound,
    PoolNotActive,
    PoolNotFound,
    PoolNotOpen,
)
from .notifications import broadcast_pool_update, notify
from .payouts import validate_payout_config
from .sports import OT_RULES, PAYOUT_STRUCTURES, SPORTS, period_labels
from .transaction import atomic, lock_pool_row

GRID_SIZE = 10
ACTIVE_STATUSES = ('open', 'locked', 'in_progress', 'suspended')
EDITABLE_SETTINGS = (
    'name',
    'game_label',
    'payout_structure',
    'tip_pct',
    'max_per_player',
    'approval_threshold',
    'ot_rule',
    'external_game_id',
)
MEMBER_STATUSES = ('pending', 'confirmed', 'deadbeat')


def _check_choice(field, value, allowed):
    if value not in allowed:
        raise InvalidPoolConfig(f'{field} must be one of {", ".join(str(a) for a in allowed)}', field=field, value=value)


def _validate_settings(sport, payout_structure, tip_pct, max_per_player, approval_threshold, ot_rule):
    _check_choice('payout_structure', payout_structure, PAYOUT_STRUCTURES)
    _check_choice('ot_rule', ot_rule, OT_RULES)
    if not 0 <= tip_pct <= 100:
        raise InvalidPoolConfig('tip_pct must be between 0 and 100', field='tip_pct', value=tip_pct)
    if not 1 <= max_per_player <= GRID_SIZE * GRID_SIZE:
        raise InvalidPoolConfig('max_per_player must be between 1 and 100', field='max_per_player', value=max_per_player)
    if not 1 <= approval_threshold <= 100:
        raise InvalidPoolConfig('approval_threshold must be between 1 and 100', field='approval_threshold', value=approval_threshold)
    validate_payout_config(payout_structure, period_labels(sport, ot_rule))


def create_pool(
    admin_id: int,
    name: str,
    away_team: str,
    home_team: str,
    denomination: int,
    sport: str = 'nfl',
    payout_structure: str = 'standard',
    tip_pct: Optional[int] = None,
    max_per_player: Optional[int] = None,
    approval_threshold: Optional[int] = None,
    ot_rule: str = 'include_final',
    game_label: Optional[str] = None,
    external_game_id: Optional[str] = None,
) -> Pool:
    """Create a pool and its 100 empty squares."""
    cfg = current_app.config
    tip_pct = cfg.get('DEFAULT_TIP_PCT', 10) if tip_pct is None else tip_pct
    max_per_player = cfg.get('DEFAULT_MAX_PER_PLAYER', 10) if max_per_player is None else max_per_player
    approval_threshold = cfg.get('DEFAULT_APPROVAL_THRESHOLD', 100) if approval_threshold is None else approval_threshold

    _check_choice('denomination', denomination, tuple(cfg.get('DENOMINATIONS', (1, 5, 10, 25, 50, 100))))
    _check_choice('sport', sport, tuple(SPORTS))
    _validate_settings(sport, payout_structure, tip_pct, max_per_player, approval_threshold, ot_rule)

    with atomic():
        pool = Pool(
            admin_id=admin_id,
            name=name,
            sport=sport,
            away_team=away_team,
            home_team=home_team,
            game_label=game_label,
            denomination=denomination,
            payout_structure=payout_structure,
            tip_pct=tip_pct,
            max_per_player=max_per_player,
            approval_threshold=approval_threshold,
            ot_rule=ot_rule,
            external_game_id=external_game_id,
            status='open',
        )
        db.session.add(pool)
        db.session.flush()
        db.session.add_all(
            Square(pool_id=pool.id, row_idx=r, col_idx=c)
            for r in range(GRID_SIZE)
            for c in range(GRID_SIZE)
        )
        log_audit(pool.id, 'admin', admin_id, 'pool_created', {
            'name': name,
            'sport': sport,
            'denomination': denomination,
        })

    current_app.logger.info(f"[pool] created pool={pool.id} admin={admin_id} sport={sport} denomination={denomination}")
    return pool


def get_pool(pool_id: int, admin_id: Optional[int] = None) -> Pool:
    query = Pool.query.filter_by(id=pool_id)
    if admin_id is not None:
        query = query.filter_by(admin_id=admin_id)
    pool = query.first()
    if pool is None:
        raise PoolNotFound(pool_id=pool_id)
    return pool


def set_pool_status(pool_id: int, status: str, actor_id) -> Pool:
    """Cancel, suspend or resume a pool.

    ``resume`` puts a suspended pool back where its data says it was:
    open without digits, in_progress with scores, otherwise locked.
    """
    with atomic():
        pool = lock_pool_row(pool_id)
        previous = pool.status
        if status == 'cancelled' and previous in ACTIVE_STATUSES:
            target = 'cancelled'
        elif status == 'suspended' and previous in ('open', 'locked', 'in_progress'):
            target = 'suspended'
        elif status == 'resume' and previous == 'suspended':
            if not pool.is_locked:
                target = 'open'
            elif Score.query.filter_by(pool_id=pool.id).count():
                target = 'in_progress'
            else:
                target = 'locked'
        else:
            raise InvalidStatusTransition(
                f'Cannot move pool from {previous} to {status}',
                pool_id=pool.id,
                status=previous,
                requested=status,
            )
        pool.status = target
        log_audit(pool.id, 'admin', actor_id, 'pool_status_changed', {'from': previous, 'to': target})

    current_app.logger.info(f"[pool] pool={pool_id} status {previous} -> {target}")
    broadcast_pool_update(pool_id, status=target)
    return pool


def pool_stats(pool: Pool) -> dict:
    counts = dict(
        db.session.query(Square.claim_status, func.count(Square.id))
        .filter(Square.pool_id == pool.id)
        .group_by(Square.claim_status)
        .all()
    )
    return {
        'available': counts.get('available', 0),
        'pending': counts.get('pending', 0),
        'claimed': counts.get('claimed', 0),
    }


def grid_view(pool_id: int):
    """10x10 nested list of square dicts; None where the square is open."""
    grid = [[None] * GRID_SIZE for _ in range(GRID_SIZE)]
    for square in Square.query.filter_by(pool_id=pool_id).order_by(Square.row_idx, Square.col_idx):
        if square.player_id is not None:
            grid[square.row_idx][square.col_idx] = square.to_dict()
    return grid


def player_squares(pool_id: int, player_id: int):
    return (
        Square.query.filter_by(pool_id=pool_id, player_id=player_id)
        .order_by(Square.row_idx, Square.col_idx)
        .all()
    )


def update_pool(pool_id: int, actor_id, **changes) -> Pool:
    """Change pool settings while the grid is still open.

    Only ``EDITABLE_SETTINGS`` may change; sport, teams and denomination
    are fixed at creation. Returns the updated pool.
    """
    unknown = sorted(set(changes) - set(EDITABLE_SETTINGS))
    if unknown:
        raise InvalidPoolConfig(f'{", ".join(unknown)} cannot be changed', field=unknown[0])
    if not changes:
        raise InvalidPoolConfig('No fields to update')
    if 'name' in changes and not str(changes['name'] or '').strip():
        raise InvalidPoolConfig('name cannot be blank', field='name')

    with atomic():
        pool = lock_pool_row(pool_id)
        if pool.status != 'open':
            raise PoolNotOpen('Pool settings can only change while the grid is open', pool_id=pool.id, status=pool.status)
        merged = {field: changes.get(field, getattr(pool, field)) for field in EDITABLE_SETTINGS}
        _validate_settings(
            pool.sport,
            merged['payout_structure'],
            merged['tip_pct'],
            merged['max_per_player'],
            merged['approval_threshold'],
            merged['ot_rule'],
        )
        changed = {}
        for field, value in changes.items():
            if getattr(pool, field) != value:
                changed[field] = [getattr(pool, field), value]
                setattr(pool, field, value)
        if changed:
            log_audit(pool.id, 'admin', actor_id, 'pool_updated', changed)

    current_app.logger.info(f"[pool] pool={pool_id} updated fields={','.join(sorted(changed)) or '-'}")
    if changed:
        broadcast_pool_update(pool_id)
    return pool


def membership(pool_id: int, player_id: int) -> Optional[PoolPlayer]:
    return PoolPlayer.query.filter_by(pool_id=pool_id, player_id=player_id).first()


def enroll(pool_id: int, player_id: int) -> PoolPlayer:
    """Stage a roster row if the player is not in the pool yet (no commit)."""
    member = membership(pool_id, player_id)
    if member is None:
        member = PoolPlayer(pool_id=pool_id, player_id=player_id, paid=False, payment_status='pending')
        db.session.add(member)
        db.session.flush()
    return member


def require_member(pool_id: int, player_id: int) -> PoolPlayer:
    member = membership(pool_id, player_id)
    if member is None:
        raise NotPoolMember(pool_id=pool_id, player_id=player_id)
    return member


def add_member(pool_id: int, player_id: int, actor_id) -> PoolPlayer:
    """Put a player on a pool's roster. Adding an existing member is a no-op."""
    with atomic():
        pool = lock_pool_row(pool_id)
        if pool.status in ('cancelled', 'final'):
            raise PoolNotActive(pool_id=pool.id, status=pool.status)
        player = db.session.get(Player, player_id)
        if player is None or player.banned:
            raise PlayerNotFound(player_id=player_id)
        existing = membership(pool.id, player.id)
        member = enroll(pool.id, player.id)
        if existing is None:
            log_audit(pool.id, 'admin', actor_id, 'player_added', {'player_id': player.id, 'name': player.name})

    if existing is None:
        current_app.logger.info(f"[roster] pool={pool_id} player={player_id} added")
    return member


def _release_all(pool_id: int, player_id: int) -> int:
    return (
        Square.query.filter(Square.pool_id == pool_id, Square.player_id == player_id)
        .update({
            'player_id': None,
            'claim_status': 'available',
            'released_at': utcnow(),
            'requested_at': None,
            'is_admin_override': True,
        }, synchronize_session=False)
    )


def remove_member(pool_id: int, player_id: int, actor_id) -> int:
    """Take a player off the roster and free their squares. Open pools only."""
    with atomic():
        pool = lock_pool_row(pool_id)
        if pool.status != 'open':
            raise PoolNotOpen(pool_id=pool.id, status=pool.status)
        member = require_member(pool.id, player_id)
        released = _release_all(pool.id, player_id)
        db.session.delete(member)
        log_audit(pool.id, 'admin', actor_id, 'player_removed', {'player_id': player_id, 'squares_released': released})

    current_app.logger.info(f"[roster] pool={pool_id} player={player_id} removed released={released}")
    if released:
        broadcast_pool_update(pool_id)
    return released


def mark_deadbeat(pool_id: int, player_id: int, actor_id) -> int:
    """Flag a member who has not paid and free every square they hold.

    Payouts already written for scored periods stay in the ledger.
    Returns the number of squares released.
    """
    with atomic():
        pool = lock_pool_row(pool_id)
        if pool.status in ('cancelled', 'final'):
            raise PoolNotActive(pool_id=pool.id, status=pool.status)
        member = require_member(pool.id, player_id)
        released = _release_all(pool.id, player_id)
        member.paid = False
        member.payment_status = 'deadbeat'
        log_audit(pool.id, 'admin', actor_id, 'player_marked_deadbeat', {
            'player_id': player_id,
            'squares_released': released,
        })

    current_app.logger.info(f"[roster] pool={pool_id} player={player_id} deadbeat released={released}")
    notify(player_id, pool_id, 'marked_deadbeat', {'squares_released': released})
    broadcast_pool_update(pool_id)
    return released


def reinstate_member(pool_id: int, player_id: int, actor_id) -> PoolPlayer:
    with atomic():
        pool = lock_pool_row(pool_id)
        member = require_member(pool.id, player_id)
        member.payment_status = 'pending'
        log_audit(pool.id, 'admin', actor_id, 'player_reinstated', {'player_id': player_id})
    current_app.logger.info(f"[roster] pool={pool_id} player={player_id} reinstated")
    return member


def pool_members(pool_id: int):
    """Roster rows for a pool, each with the number of squares held."""
    get_pool(pool_id)
    held = dict(
        db.session.query(Square.player_id, func.count(Square.id))
        .filter(Square.pool_id == pool_id, Square.player_id.isnot(None))
        .group_by(Square.player_id)
        .all()
    )
    rows = (
        PoolPlayer.query.join(Player, Player.id == PoolPlayer.player_id)
        .filter(PoolPlayer.pool_id == pool_id)
        .order_by(Player.name, Player.id)
        .all()
    )
    return [dict(member.to_dict(), square_count=held.get(member.player_id, 0)) for member in rows]


def member_pools(player_id: int):
    """Pools the player is on the roster of, newest first."""
    return (
        Pool.query.join(PoolPlayer, PoolPlayer.pool_id == Pool.id)
        .filter(PoolPlayer.player_id == player_id)
        .order_by(Pool.created_at.desc(), Pool.id.desc())
        .all()
    )
