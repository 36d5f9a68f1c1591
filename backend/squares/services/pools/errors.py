"""Error kinds raised by the pool engine.

Every ``PoolError`` is a condition the caller can act on: it names the
error kind and carries the coordinates or fields involved so the HTTP layer
can render an actionable message. ``InvalidDigitMapping`` sits outside
that hierarchy: it means a locked permutation is corrupt.
"""


class PoolError(Exception):
    kind = 'pool_error'
    message = 'Pool operation failed'

    def __init__(self, message=None, **fields):
        super().__init__(message or self.message)
        self.fields = fields

    def to_dict(self):
        payload = {'error': self.kind, 'message': str(self)}
        payload.update(self.fields)
        return payload


class PoolNotFound(PoolError):
    kind = 'pool_not_found'
    message = 'Pool not found'


class PlayerNotFound(PoolError):
    kind = 'player_not_found'
    message = 'Player not found'


class NotPoolMember(PoolError):
    kind = 'not_pool_member'
    message = 'Player is not a member of this pool'


class PoolNotOpen(PoolError):
    kind = 'pool_not_open'
    message = 'Pool is not open for claims'


class PoolLocked(PoolError):
    kind = 'pool_locked'
    message = 'Pool is locked'


class PoolNotActive(PoolError):
    kind = 'pool_not_active'
    message = 'Pool is not accepting changes'


class AlreadyLocked(PoolError):
    kind = 'already_locked'
    message = 'Pool is already locked'


class GridNotLocked(PoolError):
    kind = 'grid_not_locked'
    message = 'Grid must be locked before entering scores'


class SquareUnavailable(PoolError):
    kind = 'square_unavailable'
    message = 'Square is already taken'


class SquareNotOwned(PoolError):
    kind = 'square_not_owned'
    message = 'Square is not claimed'


class SquareNotFound(PoolError):
    kind = 'square_not_found'
    message = 'Could not find both squares'


class SquarePending(PoolError):
    kind = 'square_pending'
    message = 'Square has a pending request; approve or reject it first'


class SquareNotPending(PoolError):
    kind = 'square_not_pending'
    message = 'Square has no pending request'


class CapacityExceeded(PoolError):
    kind = 'capacity_exceeded'
    message = 'Player already holds the maximum number of squares'


class InvalidStatusTransition(PoolError):
    kind = 'invalid_status_transition'
    message = 'Pool cannot move to that status'


class InvalidPoolConfig(PoolError):
    kind = 'invalid_pool_config'
    message = 'Invalid pool settings'


class InvalidDigitMapping(RuntimeError):
    """A score digit is missing from a locked permutation."""

    def __init__(self, pool_id, away_digit, home_digit):
        super().__init__(
            f'Pool {pool_id} digit permutation does not cover away={away_digit} home={home_digit}'
        )
        self.pool_id = pool_id
        self.away_digit = away_digit
        self.home_digit = home_digit
