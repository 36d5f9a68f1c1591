from contextlib import contextmanager

from squares import db
from squares.models import Pool
from .errors import PoolNotFound


@contextmanager
def atomic():
    """Commit everything written in the block, or roll all of it back."""
    try:
        yield db.session
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise


def lock_pool_row(pool_id: int) -> Pool:
    """Load a pool with a row lock held until the surrounding commit.

    Claims, grid locking and score entry all take this lock, which
    serializes them per pool.
    """
    pool = (
        Pool.query.filter_by(id=pool_id)
        .with_for_update()
        .populate_existing()
        .first()
    )
    if pool is None:
        raise PoolNotFound(pool_id=pool_id)
    return pool
