"""Grid locking: the one-time random digit assignment for each axis.

The permutations are drawn once, when the admin locks the pool, and are
never rewritten afterwards. Every winner is looked up through them, so
they come from the OS CSPRNG with a fresh generator per call.
"""
import secrets
from typing import List, Optional, Sequence, Tuple

from flask import current_app

from squares import db
from squares.models import Pool, Square, utcnow
from .audit import log_audit
from .errors import AlreadyLocked, PoolNotOpen
from .notifications import broadcast_pool_update, notify
from .transaction import atomic, lock_pool_row

DIGITS = tuple(range(10))


def generate_digits(rng: Optional[secrets.SystemRandom] = None) -> Tuple[List[int], List[int]]:
    """Return independent (col_digits, row_digits) permutations of 0-9."""
    rng = rng or secrets.SystemRandom()
    col_digits = list(DIGITS)
    row_digits = list(DIGITS)
    rng.shuffle(col_digits)
    rng.shuffle(row_digits)
    return col_digits, row_digits


def is_permutation(digits: Optional[Sequence[int]]) -> bool:
    return digits is not None and len(digits) == 10 and sorted(digits) == list(DIGITS)


def lock_pool(pool_id: int, actor_id) -> Pool:
    """Lock the grid: write both permutations and move the pool to ``locked``."""
    with atomic():
        pool = lock_pool_row(pool_id)
        if pool.is_locked or pool.status == 'locked':
            raise AlreadyLocked(pool_id=pool.id, status=pool.status)
        if pool.status != 'open':
            raise PoolNotOpen(pool_id=pool.id, status=pool.status)

        col_digits, row_digits = generate_digits()
        updated = (
            Pool.query.filter(
                Pool.id == pool.id,
                Pool.status == 'open',
                Pool.col_digits.is_(None),
                Pool.row_digits.is_(None),
            )
            .update({
                'col_digits': col_digits,
                'row_digits': row_digits,
                'status': 'locked',
                'locked_at': utcnow(),
            }, synchronize_session=False)
        )
        if updated != 1:
            raise AlreadyLocked(pool_id=pool.id)

        log_audit(pool.id, 'admin', actor_id, 'grid_locked', {
            'col_digits': col_digits,
            'row_digits': row_digits,
        })

    # Commit expired the stale identity; this reloads the written digits
    pool = db.session.get(Pool, pool_id)
    current_app.logger.info(f"[lock] pool={pool.id} col_digits={pool.col_digits} row_digits={pool.row_digits}")

    owner_ids = {
        player_id for (player_id,) in db.session.query(Square.player_id)
        .filter(Square.pool_id == pool.id, Square.claim_status == 'claimed')
        .distinct()
    }
    for player_id in sorted(owner_ids):
        notify(player_id, pool.id, 'grid_locked', {
            'col_digits': pool.col_digits,
            'row_digits': pool.row_digits,
        })
    broadcast_pool_update(pool.id, status=pool.status)

    if pool.external_game_id:
        from .score_feed import schedule_score_sync
        schedule_score_sync(current_app._get_current_object(), pool.id)
    return pool
