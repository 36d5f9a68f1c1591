"""Square claiming, release, approval and admin reassignment.

Every change to a square goes through ``_transition``: a single
conditional UPDATE that only matches while the square is still in the
expected state. Two racing claims on one cell therefore cannot both match;
the loser sees zero affected rows and gets ``SquareUnavailable``. Checks
that span the whole pool (status, per-player capacity, approval threshold)
run under the pool row lock taken by ``lock_pool_row``.
"""
from dataclasses import asdict, dataclass
from typing import ClassVar, List, Optional, Sequence, Tuple

from flask import current_app
from sqlalchemy import and_, func, or_

from squares import db
from squares.models import Player, Pool, Square, utcnow
from .audit import log_audit
from .errors import (
    CapacityExceeded,
    NotPoolMember,
    PlayerNotFound,
    PoolLocked,
    PoolNotActive,
    PoolNotFound,
    PoolNotOpen,
    SquareNotFound,
    SquareNotOwned,
    SquareNotPending,
    SquarePending,
    SquareUnavailable,
)
from .grid import enroll, membership
from .ledger import append_entry, paid_square_count
from .notifications import broadcast_pool_update, notify
from .transaction import atomic, lock_pool_row


@dataclass(frozen=True)
class ClaimOutcome:
    row: int
    col: int
    player_id: int
    status: ClassVar[str] = ''

    def to_dict(self):
        return {**asdict(self), 'status': self.status}


@dataclass(frozen=True)
class Claimed(ClaimOutcome):
    status: ClassVar[str] = 'claimed'


@dataclass(frozen=True)
class Pending(ClaimOutcome):
    """Claim recorded but waiting for admin approval."""
    status: ClassVar[str] = 'pending'


@dataclass(frozen=True)
class ReleaseResult:
    row: int
    col: int
    previous_player_id: int
    refunded: int = 0

    def to_dict(self):
        return asdict(self)


def _transition(pool_id: int, row: int, col: int, from_statuses: Sequence[str], values: dict, *criteria) -> bool:
    updated = (
        Square.query.filter(
            Square.pool_id == pool_id,
            Square.row_idx == row,
            Square.col_idx == col,
            Square.claim_status.in_(tuple(from_statuses)),
            *criteria,
        )
        .update(values, synchronize_session=False)
    )
    return updated == 1


def _load_square(pool_id: int, row: int, col: int) -> Optional[Square]:
    return (
        Square.query.filter_by(pool_id=pool_id, row_idx=row, col_idx=col)
        .populate_existing()
        .first()
    )


def _require_square(pool_id: int, row: int, col: int) -> Square:
    square = _load_square(pool_id, row, col)
    if square is None:
        raise SquareNotFound(f'Square ({row}, {col}) not found', row=row, col=col)
    return square


def _require_player(player_id: int) -> Player:
    player = db.session.get(Player, player_id) if player_id is not None else None
    if player is None or player.banned:
        raise PlayerNotFound(player_id=player_id)
    return player


def _check_member(pool_id: int, player_id: int, is_admin: bool) -> None:
    """Players claim only in pools they belong to; admin claims enroll them."""
    if is_admin:
        enroll(pool_id, player_id)
        return
    member = membership(pool_id, player_id)
    if member is None:
        raise NotPoolMember(pool_id=pool_id, player_id=player_id)
    if member.payment_status == 'deadbeat':
        raise NotPoolMember('Player is marked as unpaid in this pool', pool_id=pool_id, player_id=player_id, payment_status='deadbeat')


def _owned_count(pool_id: int, player_id: int, statuses=('pending', 'claimed')) -> int:
    return (
        Square.query.filter(
            Square.pool_id == pool_id,
            Square.player_id == player_id,
            Square.claim_status.in_(statuses),
        ).count()
    )


def _needs_approval(pool: Pool) -> bool:
    taken, total = (
        db.session.query(
            func.count(Square.id).filter(Square.claim_status != 'available'),
            func.count(Square.id),
        )
        .filter(Square.pool_id == pool.id)
        .one()
    )
    if not total:
        return False
    return taken * 100 >= pool.approval_threshold * total


def claim_square(pool_id: int, row: int, col: int, player_id: int, actor_id, actor_role: str) -> ClaimOutcome:
    """Claim a square for ``player_id``.

    Self-service claims land as ``Pending`` once the grid is at or past the
    pool's approval threshold. Admin claims always land as ``Claimed`` and
    may also take over a square someone has requested.
    Players must be on the pool's roster; an admin claim enrolls them.
    """
    is_admin = actor_role == 'admin'
    with atomic():
        pool = lock_pool_row(pool_id)
        if pool.status != 'open':
            raise PoolNotOpen(pool_id=pool.id, status=pool.status, row=row, col=col)
        player = _require_player(player_id)
        _check_member(pool.id, player.id, is_admin)

        owned = _owned_count(pool.id, player.id)
        if owned >= pool.max_per_player:
            raise CapacityExceeded(
                f'Maximum {pool.max_per_player} squares per player',
                player_id=player.id,
                max_per_player=pool.max_per_player,
                owned=owned,
            )

        square = _load_square(pool.id, row, col)
        displaced_id = square.player_id if square is not None and square.claim_status == 'pending' else None

        pending = not is_admin and _needs_approval(pool)
        now = utcnow()
        if pending:
            values = {
                'player_id': player.id,
                'claim_status': 'pending',
                'requested_at': now,
                'is_admin_override': False,
            }
        else:
            values = {
                'player_id': player.id,
                'claim_status': 'claimed',
                'claimed_at': now,
                'requested_at': None,
                'is_admin_override': is_admin,
            }
        sources = ('available', 'pending') if is_admin else ('available',)
        if not _transition(pool.id, row, col, sources, values):
            raise SquareUnavailable(f'Square ({row}, {col}) is already taken', row=row, col=col)

        log_audit(pool.id, actor_role, actor_id, 'square_requested' if pending else 'square_claimed', {
            'row': row,
            'col': col,
            'player_id': player.id,
            'player_name': player.name,
            'displaced_player_id': displaced_id,
        })

    outcome = Pending(row, col, player.id) if pending else Claimed(row, col, player.id)
    current_app.logger.info(
        f"[claim] pool={pool_id} square=({row},{col}) player={player.id} actor={actor_role}:{actor_id} status={outcome.status}"
    )
    if displaced_id is not None and displaced_id != player.id:
        notify(displaced_id, pool_id, 'square_rejected', {'row': row, 'col': col})
    notify(player.id, pool_id, 'square_pending' if pending else 'square_claimed', outcome.to_dict())
    broadcast_pool_update(pool_id)
    return outcome


def release_square(pool_id: int, row: int, col: int, actor_id, actor_role: str = 'admin') -> ReleaseResult:
    """Return a claimed square to the grid.

    A player releasing their own square while the pool is open gets one
    denomination refunded, but only while they have paid for more squares
    than they still hold.
    """
    with atomic():
        pool = lock_pool_row(pool_id)
        if pool.status != 'open':
            raise PoolLocked(pool_id=pool.id, status=pool.status, row=row, col=col)
        square = _require_square(pool.id, row, col)
        if square.claim_status == 'available':
            raise SquareNotOwned(f'Square ({row}, {col}) is not claimed', row=row, col=col)
        if square.claim_status == 'pending':
            raise SquarePending(row=row, col=col, player_id=square.player_id)
        if actor_role == 'player' and square.player_id != actor_id:
            raise SquareNotOwned(f'Square ({row}, {col}) belongs to another player', row=row, col=col)

        previous_id = square.player_id
        released = _transition(pool.id, row, col, ('claimed',), {
            'player_id': None,
            'claim_status': 'available',
            'released_at': utcnow(),
            'requested_at': None,
            'is_admin_override': actor_role == 'admin',
        }, Square.player_id == previous_id)
        if not released:
            raise SquareNotOwned(f'Square ({row}, {col}) changed hands', row=row, col=col)

        refunded = 0
        if actor_role == 'player':
            still_held = _owned_count(pool.id, previous_id, statuses=('claimed',))
            if paid_square_count(pool, previous_id) > still_held:
                append_entry(
                    previous_id,
                    pool.id,
                    'refund',
                    pool.denomination,
                    f"Refund for released square ({row}, {col})",
                )
                refunded = pool.denomination

        log_audit(pool.id, actor_role, actor_id, 'square_released', {
            'row': row,
            'col': col,
            'previous_player_id': previous_id,
            'refunded': refunded,
        })

    current_app.logger.info(
        f"[release] pool={pool_id} square=({row},{col}) player={previous_id} actor={actor_role}:{actor_id} refunded={refunded}"
    )
    if actor_role != 'player':
        notify(previous_id, pool_id, 'square_released', {'row': row, 'col': col})
    broadcast_pool_update(pool_id)
    return ReleaseResult(row, col, previous_id, refunded)


def assign_square(pool_id: int, row: int, col: int, player_id: int, admin_id) -> ClaimOutcome:
    """Give a square to ``player_id`` regardless of its current holder.

    The owner is swapped in one UPDATE, so readers never see the square
    free in between. If the new holder is at capacity the square is
    released and ``CapacityExceeded`` is raised.
    """
    capacity_error = None
    with atomic():
        pool = lock_pool_row(pool_id)
        if pool.status != 'open':
            raise PoolNotOpen(pool_id=pool.id, status=pool.status, row=row, col=col)
        player = _require_player(player_id)
        enroll(pool.id, player.id)
        square = _require_square(pool.id, row, col)
        previous_id, previous_status = square.player_id, square.claim_status

        if previous_id == player.id and previous_status == 'claimed':
            return Claimed(row, col, player.id)

        owned = _owned_count(pool.id, player.id)
        if previous_id == player.id:
            # a pending request by the same player is already counted
            owned -= 1
        if owned >= pool.max_per_player:
            capacity_error = CapacityExceeded(
                f'Maximum {pool.max_per_player} squares per player',
                player_id=player.id,
                max_per_player=pool.max_per_player,
                owned=owned,
                row=row,
                col=col,
            )
            if previous_id is not None:
                _transition(pool.id, row, col, (previous_status,), {
                    'player_id': None,
                    'claim_status': 'available',
                    'released_at': utcnow(),
                    'requested_at': None,
                    'is_admin_override': True,
                }, Square.player_id == previous_id)
                log_audit(pool.id, 'admin', admin_id, 'square_released', {
                    'row': row,
                    'col': col,
                    'previous_player_id': previous_id,
                    'reason': 'assign_capacity_exceeded',
                })
        else:
            assigned = _transition(pool.id, row, col, (previous_status,), {
                'player_id': player.id,
                'claim_status': 'claimed',
                'claimed_at': utcnow(),
                'requested_at': None,
                'is_admin_override': True,
            }, Square.player_id.is_(None) if previous_id is None else Square.player_id == previous_id)
            if not assigned:
                raise SquareUnavailable(f'Square ({row}, {col}) changed while assigning', row=row, col=col)
            log_audit(pool.id, 'admin', admin_id, 'square_assigned', {
                'row': row,
                'col': col,
                'player_id': player.id,
                'player_name': player.name,
                'previous_player_id': previous_id,
            })

    if previous_id is not None and previous_id != player.id:
        notify(previous_id, pool_id, 'square_released', {'row': row, 'col': col})
    broadcast_pool_update(pool_id)
    if capacity_error is not None:
        current_app.logger.info(f"[assign] pool={pool_id} square=({row},{col}) player={player.id} capacity exceeded, square released")
        raise capacity_error

    current_app.logger.info(f"[assign] pool={pool_id} square=({row},{col}) player={player.id} previous={previous_id}")
    outcome = Claimed(row, col, player.id)
    notify(player.id, pool_id, 'square_claimed', outcome.to_dict())
    return outcome


def swap_squares(pool_id: int, square_a: Tuple[int, int], square_b: Tuple[int, int], admin_id) -> Tuple[Optional[int], Optional[int]]:
    """Exchange the holders of two squares. Returns the new (a, b) owners."""
    (row_a, col_a), (row_b, col_b) = square_a, square_b
    with atomic():
        pool = lock_pool_row(pool_id)
        found = []
        if (row_a, col_a) != (row_b, col_b):
            found = (
                Square.query.filter(
                    Square.pool_id == pool.id,
                    or_(
                        and_(Square.row_idx == row_a, Square.col_idx == col_a),
                        and_(Square.row_idx == row_b, Square.col_idx == col_b),
                    ),
                )
                .with_for_update()
                .populate_existing()
                .all()
            )
        if len(found) != 2:
            raise SquareNotFound(square_a=[row_a, col_a], square_b=[row_b, col_b])
        by_cell = {(sq.row_idx, sq.col_idx): sq for sq in found}
        sq_a, sq_b = by_cell[(row_a, col_a)], by_cell[(row_b, col_b)]
        for sq in (sq_a, sq_b):
            if sq.claim_status == 'pending':
                raise SquarePending(row=sq.row_idx, col=sq.col_idx, player_id=sq.player_id)

        owner_a, owner_b = sq_a.player_id, sq_b.player_id
        now = utcnow()
        override = pool.status != 'open'
        for sq, owner in ((sq_a, owner_b), (sq_b, owner_a)):
            sq.player_id = owner
            sq.claim_status = 'claimed' if owner is not None else 'available'
            sq.claimed_at = now if owner is not None else None
            sq.released_at = None if owner is not None else now
            sq.is_admin_override = override

        log_audit(pool.id, 'admin', admin_id, 'squares_swapped', {
            'square_a': [row_a, col_a],
            'square_b': [row_b, col_b],
            'owner_a': owner_a,
            'owner_b': owner_b,
        })

    current_app.logger.info(f"[swap] pool={pool_id} ({row_a},{col_a})<->({row_b},{col_b}) owners {owner_a}<->{owner_b}")
    broadcast_pool_update(pool_id)
    return owner_b, owner_a


def _get_pool(pool_id: int) -> Pool:
    pool = db.session.get(Pool, pool_id)
    if pool is None:
        raise PoolNotFound(pool_id=pool_id)
    return pool


def _lock_active_pool(pool_id: int) -> Pool:
    pool = lock_pool_row(pool_id)
    if pool.status in ('cancelled', 'final'):
        raise PoolNotActive(pool_id=pool.id, status=pool.status)
    return pool


def _approved_values():
    return {'claim_status': 'claimed', 'claimed_at': utcnow()}


def _rejected_values():
    return {
        'claim_status': 'available',
        'player_id': None,
        'requested_at': None,
        'released_at': utcnow(),
    }


def _settle_pending(pool_id: int, row: int, col: int, admin_id, approve: bool) -> int:
    with atomic():
        pool = _lock_active_pool(pool_id)
        square = _require_square(pool.id, row, col)
        if square.claim_status != 'pending':
            raise SquareNotPending(row=row, col=col, status=square.claim_status)
        player_id = square.player_id
        values = _approved_values() if approve else _rejected_values()
        if not _transition(pool.id, row, col, ('pending',), values, Square.player_id == player_id):
            raise SquareNotPending(row=row, col=col)
        log_audit(pool.id, 'admin', admin_id, 'square_approved' if approve else 'square_rejected', {
            'row': row,
            'col': col,
            'player_id': player_id,
        })

    kind = 'square_approved' if approve else 'square_rejected'
    current_app.logger.info(f"[{kind}] pool={pool_id} square=({row},{col}) player={player_id}")
    notify(player_id, pool_id, kind, {'squares': [{'row': row, 'col': col}]})
    broadcast_pool_update(pool_id)
    return player_id


def approve_square(pool_id: int, row: int, col: int, admin_id) -> int:
    """Approve a pending request. Returns the player who now holds it."""
    return _settle_pending(pool_id, row, col, admin_id, approve=True)


def reject_square(pool_id: int, row: int, col: int, admin_id) -> int:
    """Reject a pending request. Returns the player who had asked for it."""
    return _settle_pending(pool_id, row, col, admin_id, approve=False)


def _settle_player_requests(pool_id: int, player_id: int, admin_id, approve: bool) -> List[dict]:
    settled = []
    with atomic():
        pool = _lock_active_pool(pool_id)
        requests = (
            Square.query.filter_by(pool_id=pool.id, player_id=player_id, claim_status='pending')
            .order_by(Square.requested_at, Square.id)
            .all()
        )
        for sq in requests:
            values = _approved_values() if approve else _rejected_values()
            if _transition(pool.id, sq.row_idx, sq.col_idx, ('pending',), values, Square.player_id == player_id):
                settled.append({'row': sq.row_idx, 'col': sq.col_idx})
        if settled:
            log_audit(pool.id, 'admin', admin_id, 'bulk_approved' if approve else 'bulk_rejected', {
                'player_id': player_id,
                'squares': settled,
            })

    if settled:
        notify(player_id, pool_id, 'square_approved' if approve else 'square_rejected', {'squares': settled})
        broadcast_pool_update(pool_id)
    return settled


def approve_player_requests(pool_id: int, player_id: int, admin_id) -> List[dict]:
    return _settle_player_requests(pool_id, player_id, admin_id, approve=True)


def reject_player_requests(pool_id: int, player_id: int, admin_id) -> List[dict]:
    return _settle_player_requests(pool_id, player_id, admin_id, approve=False)


def pending_requests(pool_id: int) -> List[Square]:
    pool = _get_pool(pool_id)
    return (
        Square.query.filter_by(pool_id=pool.id, claim_status='pending')
        .order_by(Square.requested_at, Square.id)
        .all()
    )
