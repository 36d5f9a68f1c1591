"""Ledger helpers.

Entries are append-only. A player's money in (buy-ins, tips) is stored as a
negative amount, money owed to them (payouts, refunds) as positive, so the
balance is a plain signed sum.
"""
from typing import Optional

from sqlalchemy import func

from squares import db
from squares.models import LedgerEntry, Player, Pool, PoolPlayer, Square
from .audit import log_audit
from .errors import InvalidPoolConfig, PlayerNotFound
from .grid import MEMBER_STATUSES, enroll, get_pool, require_member
from .transaction import atomic, lock_pool_row

LEDGER_TYPES = ('buy_in', 'payout', 'tip', 'refund', 'adjustment')


def append_entry(player_id: int, pool_id: Optional[int], entry_type: str, amount: int, description: str = None) -> LedgerEntry:
    """Stage a ledger row in the current transaction (no commit)."""
    if entry_type not in LEDGER_TYPES:
        raise ValueError(f"unknown ledger type {entry_type!r}")
    entry = LedgerEntry(
        player_id=player_id,
        pool_id=pool_id,
        type=entry_type,
        amount=amount,
        description=description,
    )
    db.session.add(entry)
    return entry


def _sum(*criteria) -> int:
    total = db.session.query(func.coalesce(func.sum(LedgerEntry.amount), 0)).filter(*criteria).scalar()
    return int(total or 0)


def player_balance(player_id: int) -> int:
    return _sum(LedgerEntry.player_id == player_id)


def player_entries(player_id: int):
    return (
        LedgerEntry.query.filter_by(player_id=player_id)
        .order_by(LedgerEntry.id.desc())
        .all()
    )


def paid_square_count(pool: Pool, player_id: int) -> int:
    """Squares the player has paid for in this pool, net of refunds."""
    paid = -_sum(
        LedgerEntry.player_id == player_id,
        LedgerEntry.pool_id == pool.id,
        LedgerEntry.type == 'buy_in',
    )
    refunded = _sum(
        LedgerEntry.player_id == player_id,
        LedgerEntry.pool_id == pool.id,
        LedgerEntry.type == 'refund',
    )
    return max(0, paid - refunded) // pool.denomination


def _load(pool_id: int, player_id: int):
    pool = lock_pool_row(pool_id)
    player = db.session.get(Player, player_id)
    if player is None:
        raise PlayerNotFound(player_id=player_id)
    return pool, player


def record_buy_in(pool_id: int, player_id: int, squares: int, actor_id) -> LedgerEntry:
    if squares < 1:
        raise InvalidPoolConfig('squares must be at least 1', field='squares')
    with atomic():
        pool, player = _load(pool_id, player_id)
        amount = squares * pool.denomination
        entry = append_entry(
            player.id,
            pool.id,
            'buy_in',
            -amount,
            f"Payment for {squares} square(s) @ ${pool.denomination}/sq",
        )
        member = enroll(pool.id, player.id)
        member.paid = True
        member.payment_status = 'confirmed'
        log_audit(pool.id, 'admin', actor_id, 'payment_recorded', {
            'player_id': player.id,
            'squares': squares,
            'amount': amount,
        })
    return entry


def record_tip(pool_id: int, player_id: int, amount: int, actor_id) -> LedgerEntry:
    if amount < 1:
        raise InvalidPoolConfig('tip must be positive', field='amount')
    with atomic():
        pool, player = _load(pool_id, player_id)
        entry = append_entry(player.id, pool.id, 'tip', -amount, f"Tip from {pool.name} winnings")
        log_audit(pool.id, 'admin', actor_id, 'tip_recorded', {'player_id': player.id, 'amount': amount})
    return entry


def set_payment_status(pool_id: int, player_id: int, actor_id, paid: Optional[bool] = None, payment_status: Optional[str] = None) -> PoolPlayer:
    if paid is None and payment_status is None:
        raise InvalidPoolConfig('No fields to update')
    if payment_status is not None and payment_status not in MEMBER_STATUSES:
        raise InvalidPoolConfig(
            f'payment_status must be one of {", ".join(MEMBER_STATUSES)}',
            field='payment_status',
            value=payment_status,
        )
    with atomic():
        pool = lock_pool_row(pool_id)
        member = require_member(pool.id, player_id)
        if paid is not None:
            member.paid = paid
        if payment_status is not None:
            member.payment_status = payment_status
        log_audit(pool.id, 'admin', actor_id, 'payment_updated', {
            'player_id': player_id,
            'paid': paid,
            'payment_status': payment_status,
        })
    return member


def _sums_by_player(pool_id: int, entry_type: str) -> dict:
    return dict(
        db.session.query(LedgerEntry.player_id, func.sum(LedgerEntry.amount))
        .filter(LedgerEntry.pool_id == pool_id, LedgerEntry.type == entry_type)
        .group_by(LedgerEntry.player_id)
        .all()
    )


def pool_payment_summary(pool_id: int) -> dict:
    """Who owes what for the squares they hold in one pool.

    ``amount_paid`` is buy-ins net of refunds; a positive ``balance`` means
    the player has paid ahead of their squares.
    """
    pool = get_pool(pool_id)
    held = dict(
        db.session.query(Square.player_id, func.count(Square.id))
        .filter(Square.pool_id == pool.id, Square.claim_status == 'claimed')
        .group_by(Square.player_id)
        .all()
    )
    bought = _sums_by_player(pool.id, 'buy_in')
    refunded = _sums_by_player(pool.id, 'refund')
    members = (
        PoolPlayer.query.join(Player, Player.id == PoolPlayer.player_id)
        .filter(PoolPlayer.pool_id == pool.id)
        .order_by(Player.name, Player.id)
        .all()
    )

    players = []
    for member in members:
        square_count = held.get(member.player_id, 0)
        amount_owed = square_count * pool.denomination
        amount_paid = -int(bought.get(member.player_id) or 0) - int(refunded.get(member.player_id) or 0)
        players.append({
            'player_id': member.player_id,
            'player_name': member.player.name,
            'square_count': square_count,
            'amount_owed': amount_owed,
            'amount_paid': amount_paid,
            'balance': amount_paid - amount_owed,
            'paid': member.paid,
            'payment_status': member.payment_status,
        })

    total_squares = sum(p['square_count'] for p in players)
    paid_squares = sum(p['square_count'] for p in players if p['paid'])
    return {
        'pool_id': pool.id,
        'denomination': pool.denomination,
        'total_squares': total_squares,
        'total_value': total_squares * pool.denomination,
        'paid_squares': paid_squares,
        'paid_amount': sum(p['amount_paid'] for p in players if p['paid']),
        'unpaid_squares': total_squares - paid_squares,
        'unpaid_amount': sum(p['amount_owed'] for p in players if not p['paid']),
        'players': players,
    }
