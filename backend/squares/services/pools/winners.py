"""Score entry and winner resolution.

A period's winner is the holder of the square at
(row of home last digit, column of away last digit) in the locked
permutations. Score upsert, winner upsert, ledger entries and audit rows
are written in one transaction, so readers see either the previous result
or the new one.
"""
from dataclasses import asdict, dataclass
from typing import List, Optional, Sequence, Tuple

from flask import current_app

from squares import db
from squares.models import Player, Pool, Score, Square, Winner, utcnow
from .audit import log_audit
from .digits import is_permutation
from .errors import GridNotLocked, InvalidDigitMapping, InvalidStatusTransition, PoolNotActive, PoolNotFound
from .ledger import append_entry
from .notifications import broadcast_pool_update, notify
from .payouts import payout_amount, pool_percentages, round_half_up
from .sports import SPORTS, period_key as key_for, period_labels
from .transaction import atomic, lock_pool_row


@dataclass(frozen=True)
class WinnerResult:
    period_key: str
    player_id: int
    player_name: str
    square_row: int
    square_col: int
    payout_amount: int
    tip_suggestion: int

    def to_dict(self):
        return asdict(self)


def locate_square(col_digits: Sequence[int], row_digits: Sequence[int], away_score: int, home_score: int, pool_id=None) -> Tuple[int, int]:
    """Map a score to the (row, col) of the winning square."""
    away_digit = away_score % 10
    home_digit = home_score % 10
    try:
        col = list(col_digits).index(away_digit)
        row = list(row_digits).index(home_digit)
    except (ValueError, TypeError):
        raise InvalidDigitMapping(pool_id, away_digit, home_digit) from None
    return row, col


def resolve_winner(pool, period_key: str, away_score: int, home_score: int, payout_pct: int) -> Optional[WinnerResult]:
    """Resolve and record the winner of one period.

    Runs inside the caller's transaction and does not commit. A previous
    result for the same period is superseded: its payout is reversed with
    an ``adjustment`` entry before the new payout (if any) is written.
    Any owned square wins, including one whose request is still pending;
    an open square means the period's money stays in the pot.
    """
    if not pool.is_locked:
        raise GridNotLocked(pool_id=pool.id)
    if not (is_permutation(pool.col_digits) and is_permutation(pool.row_digits)):
        raise InvalidDigitMapping(pool.id, away_score % 10, home_score % 10)
    row, col = locate_square(pool.col_digits, pool.row_digits, away_score, home_score, pool_id=pool.id)

    square = (
        Square.query.filter_by(pool_id=pool.id, row_idx=row, col_idx=col)
        .populate_existing()
        .first()
    )
    prior = Winner.query.filter_by(pool_id=pool.id, period_key=period_key).first()
    if prior is not None and prior.payout_amount:
        append_entry(
            prior.player_id,
            pool.id,
            'adjustment',
            -prior.payout_amount,
            f"Reversal of {period_key} payout after score correction",
        )

    if square is None or square.player_id is None:
        if prior is not None:
            db.session.delete(prior)
        log_audit(pool.id, 'system', None, 'no_winner', {
            'period_key': period_key,
            'row': row,
            'col': col,
            'away_score': away_score,
            'home_score': home_score,
        })
        return None

    player = db.session.get(Player, square.player_id)
    payout = payout_amount(pool.total, payout_pct)
    tip = round_half_up(payout * pool.tip_pct / 100)

    winner = prior
    if winner is None:
        winner = Winner(pool_id=pool.id, period_key=period_key)
        db.session.add(winner)
    winner.player_id = player.id
    winner.square_row = row
    winner.square_col = col
    winner.payout_amount = payout
    winner.tip_suggestion = tip
    winner.notified = False
    winner.notified_at = None

    append_entry(player.id, pool.id, 'payout', payout, f"Won {period_key} payout")
    log_audit(pool.id, 'system', None, 'winner_calculated', {
        'period_key': period_key,
        'player_id': player.id,
        'player_name': player.name,
        'row': row,
        'col': col,
        'away_score': away_score,
        'home_score': home_score,
        'payout_amount': payout,
        'superseded_player_id': prior.player_id if prior is not None else None,
    })
    return WinnerResult(period_key, player.id, player.name, row, col, payout, tip)


def enter_score(
    pool_id: int,
    period_key: str,
    away_score: int,
    home_score: int,
    payout_pct: Optional[int] = None,
    period_label: Optional[str] = None,
    actor_id=None,
    actor_type: str = 'admin',
    game_over: bool = False,
):
    """Record (or correct) a period's score and resolve its winner.

    ``payout_pct`` defaults to the pool's payout policy share for the
    period. The pool finishes when the last paying period is scored, or
    with ``game_over`` once every regulation period has a score (a
    game that needed no overtime). Returns ``(score, winner_result_or_None)``.
    """
    with atomic():
        pool = lock_pool_row(pool_id)
        if pool.status in ('cancelled', 'suspended'):
            raise PoolNotActive(pool_id=pool.id, status=pool.status)
        if not pool.is_locked:
            raise GridNotLocked(pool_id=pool.id)

        labels = period_labels(pool.sport, pool.ot_rule)
        keys = [key_for(i) for i in range(len(labels))]
        if payout_pct is None:
            payout_pct = pool_percentages(pool).get(period_key, 0)
        if period_label is None:
            period_label = labels[keys.index(period_key)] if period_key in keys else period_key

        score = Score.query.filter_by(pool_id=pool.id, period_key=period_key).first()
        if score is None:
            score = Score(pool_id=pool.id, period_key=period_key)
            db.session.add(score)
        score.period_label = period_label
        score.away_score = away_score
        score.home_score = home_score
        score.payout_pct = payout_pct
        score.entered_at = utcnow()
        score.entered_by = str(actor_id) if actor_id is not None else None

        log_audit(pool.id, actor_type, actor_id, 'score_entered', {
            'period_key': period_key,
            'away_score': away_score,
            'home_score': home_score,
            'payout_pct': payout_pct,
        })

        result = resolve_winner(pool, period_key, away_score, home_score, payout_pct)

        if pool.status == 'locked':
            pool.status = 'in_progress'
        finished = keys and period_key == keys[-1]
        if pool.status == 'in_progress' and (finished or (game_over and regulation_scored(pool))):
            pool.status = 'final'

    current_app.logger.info(
        f"[score] pool={pool_id} period={period_key} away={away_score} home={home_score} "
        f"winner={result.player_id if result else None} payout={result.payout_amount if result else 0}"
    )
    if result is not None:
        _notify_winner(pool_id, result)
    broadcast_pool_update(pool_id, period_key=period_key)
    return score, result


def _notify_winner(pool_id: int, result: WinnerResult) -> None:
    if not notify(result.player_id, pool_id, 'winner', result.to_dict()):
        return
    try:
        Winner.query.filter_by(pool_id=pool_id, period_key=result.period_key, player_id=result.player_id).update(
            {'notified': True, 'notified_at': utcnow()}, synchronize_session=False
        )
        db.session.commit()
    except Exception as exc:
        db.session.rollback()
        current_app.logger.warning(f"[score] pool={pool_id} period={result.period_key} notified flag not saved: {exc}")


def _require_pool(pool_id: int):
    pool = db.session.get(Pool, pool_id)
    if pool is None:
        raise PoolNotFound(pool_id=pool_id)
    return pool


def pool_scores(pool_id: int):
    _require_pool(pool_id)
    return Score.query.filter_by(pool_id=pool_id).order_by(Score.period_key).all()


def pool_winners(pool_id: int):
    _require_pool(pool_id)
    return Winner.query.filter_by(pool_id=pool_id).order_by(Winner.period_key).all()


def regulation_keys(pool) -> List[str]:
    count = len(SPORTS.get(pool.sport, SPORTS['custom'])['periods'])
    return [key_for(i) for i in range(count)]


def regulation_scored(pool) -> bool:
    scored = {key for (key,) in Score.query.with_entities(Score.period_key).filter_by(pool_id=pool.id)}
    return all(key in scored for key in regulation_keys(pool))


def finish_pool(pool_id: int, actor_id=None, actor_type: str = 'admin') -> Pool:
    """Close a game that ended in regulation. The overtime share stays unpaid."""
    with atomic():
        pool = lock_pool_row(pool_id)
        if pool.status != 'in_progress' or not regulation_scored(pool):
            raise InvalidStatusTransition(
                'Every regulation period needs a score before the pool can finish',
                pool_id=pool.id,
                status=pool.status,
                requested='final',
            )
        pool.status = 'final'
        log_audit(pool.id, actor_type, actor_id, 'pool_status_changed', {'from': 'in_progress', 'to': 'final'})

    current_app.logger.info(f"[pool] pool={pool_id} status in_progress -> final actor={actor_type}:{actor_id}")
    broadcast_pool_update(pool_id, status='final')
    return pool
