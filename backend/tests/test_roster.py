import pytest

from squares.models import AuditLog, Notification, PoolPlayer
from squares.services.pools.claims import claim_square
from squares.services.pools.digits import lock_pool
from squares.services.pools.errors import (
    InvalidPoolConfig,
    NotPoolMember,
    PlayerNotFound,
    PoolNotOpen,
)
from squares.services.pools.grid import (
    add_member,
    mark_deadbeat,
    member_pools,
    pool_members,
    reinstate_member,
    remove_member,
    update_pool,
)
from squares.services.pools.ledger import pool_payment_summary, record_buy_in, set_payment_status


def test_add_member_is_idempotent(make_pool, make_player, admin):
    pool = make_pool()
    alice = make_player('Alice')
    add_member(pool.id, alice.id, admin.id)
    member = add_member(pool.id, alice.id, admin.id)
    assert member.payment_status == 'pending'
    assert member.paid is False
    assert PoolPlayer.query.filter_by(pool_id=pool.id).count() == 1
    assert AuditLog.query.filter_by(pool_id=pool.id, action='player_added').count() == 1
    assert [p.id for p in member_pools(alice.id)] == [pool.id]

    banned = make_player('Mallory', banned=True)
    with pytest.raises(PlayerNotFound):
        add_member(pool.id, banned.id, admin.id)


def test_roster_lists_square_counts(make_pool, make_player):
    pool = make_pool()
    alice, bob = make_player('Alice', pool), make_player('Bob', pool)
    claim_square(pool.id, 0, 0, alice.id, alice.id, 'player')
    claim_square(pool.id, 0, 1, alice.id, alice.id, 'player')
    roster = pool_members(pool.id)
    assert [(m['name'], m['square_count']) for m in roster] == [('Alice', 2), ('Bob', 0)]


def test_deadbeat_releases_squares_and_blocks_claims(make_pool, make_player, admin):
    pool = make_pool()
    alice = make_player('Alice', pool)
    claim_square(pool.id, 1, 1, alice.id, alice.id, 'player')
    claim_square(pool.id, 1, 2, alice.id, alice.id, 'player')

    assert mark_deadbeat(pool.id, alice.id, admin.id) == 2
    assert pool_members(pool.id)[0]['square_count'] == 0
    assert PoolPlayer.query.filter_by(pool_id=pool.id, player_id=alice.id).one().payment_status == 'deadbeat'
    assert Notification.query.filter_by(player_id=alice.id, kind='marked_deadbeat').count() == 1

    with pytest.raises(NotPoolMember) as exc:
        claim_square(pool.id, 1, 1, alice.id, alice.id, 'player')
    assert exc.value.fields['payment_status'] == 'deadbeat'

    reinstate_member(pool.id, alice.id, admin.id)
    assert claim_square(pool.id, 1, 1, alice.id, alice.id, 'player').status == 'claimed'


def test_remove_member_frees_squares(make_pool, make_player, admin):
    pool = make_pool()
    alice = make_player('Alice', pool)
    claim_square(pool.id, 4, 4, alice.id, alice.id, 'player')
    assert remove_member(pool.id, alice.id, admin.id) == 1
    assert pool_members(pool.id) == []
    with pytest.raises(NotPoolMember):
        remove_member(pool.id, alice.id, admin.id)

    lock_pool(pool.id, admin.id)
    bob = make_player('Bob', pool)
    with pytest.raises(PoolNotOpen):
        remove_member(pool.id, bob.id, admin.id)


def test_update_pool_settings_while_open(make_pool, admin):
    pool = make_pool()
    updated = update_pool(pool.id, admin.id, name='Final Four', tip_pct=5, max_per_player=4, ot_rule='separate')
    assert (updated.name, updated.tip_pct, updated.max_per_player, updated.ot_rule) == ('Final Four', 5, 4, 'separate')
    audit = AuditLog.query.filter_by(pool_id=pool.id, action='pool_updated').one()
    assert audit.detail['tip_pct'] == [10, 5]

    with pytest.raises(InvalidPoolConfig):
        update_pool(pool.id, admin.id, tip_pct=150)
    with pytest.raises(InvalidPoolConfig):
        update_pool(pool.id, admin.id, denomination=25)
    with pytest.raises(InvalidPoolConfig):
        update_pool(pool.id, admin.id)

    lock_pool(pool.id, admin.id)
    with pytest.raises(PoolNotOpen):
        update_pool(pool.id, admin.id, name='Too late')


def test_payment_status_updates(make_pool, make_player, admin):
    pool = make_pool()
    alice = make_player('Alice', pool)
    member = set_payment_status(pool.id, alice.id, admin.id, paid=True, payment_status='confirmed')
    assert (member.paid, member.payment_status) == (True, 'confirmed')

    with pytest.raises(InvalidPoolConfig):
        set_payment_status(pool.id, alice.id, admin.id, payment_status='maybe')
    outsider = make_player('Olive')
    with pytest.raises(NotPoolMember):
        set_payment_status(pool.id, outsider.id, admin.id, paid=True)


def test_pool_payment_summary(make_pool, make_player, fill_squares, admin):
    pool = make_pool(denomination=10)
    alice, bob = make_player('Alice', pool), make_player('Bob', pool)
    fill_squares(pool, [alice], 3)
    fill_squares(pool, [bob], 2, start=3)
    record_buy_in(pool.id, alice.id, 3, admin.id)

    summary = pool_payment_summary(pool.id)
    assert summary['total_squares'] == 5
    assert summary['total_value'] == 50
    assert (summary['paid_squares'], summary['paid_amount']) == (3, 30)
    assert (summary['unpaid_squares'], summary['unpaid_amount']) == (2, 20)

    by_name = {p['player_name']: p for p in summary['players']}
    assert by_name['Alice']['balance'] == 0
    assert by_name['Alice']['payment_status'] == 'confirmed'
    assert by_name['Bob']['amount_owed'] == 20
    assert by_name['Bob']['balance'] == -20


def test_buy_in_enrolls_player(make_pool, make_player, admin):
    pool = make_pool()
    carol = make_player('Carol')
    record_buy_in(pool.id, carol.id, 1, admin.id)
    member = PoolPlayer.query.filter_by(pool_id=pool.id, player_id=carol.id).one()
    assert (member.paid, member.payment_status) == (True, 'confirmed')
