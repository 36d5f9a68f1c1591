import pytest

from squares.services.pools.errors import InvalidPoolConfig
from squares.services.pools.payouts import (
    payout_amount,
    payout_breakdown,
    percentages_for,
    round_half_up,
    validate_payout_config,
)
from squares.services.pools.sports import period_labels

QUARTERS = ['Q1', 'Q2', 'Q3', 'Q4']


def test_standard_splits_evenly():
    assert percentages_for('standard', QUARTERS) == {'p0': 25, 'p1': 25, 'p2': 25, 'p3': 25}


def test_standard_last_period_absorbs_remainder():
    assert percentages_for('standard', ['P1', 'P2', 'P3']) == {'p0': 33, 'p1': 33, 'p2': 34}


def test_heavy_final():
    assert percentages_for('heavy_final', QUARTERS) == {'p0': 10, 'p1': 10, 'p2': 10, 'p3': 70}


def test_halftime_final():
    assert percentages_for('halftime_final', QUARTERS) == {'p0': 0, 'p1': 25, 'p2': 0, 'p3': 75}
    assert percentages_for('halftime_final', ['H1', 'H2']) == {'p0': 25, 'p1': 75}


def test_reverse_table_and_fallback():
    assert percentages_for('reverse', QUARTERS) == {'p0': 40, 'p1': 30, 'p2': 20, 'p3': 10}
    five = percentages_for('reverse', QUARTERS + ['OT'])
    assert five['p4'] == 20
    # Two-period sports keep the fixed table and do not sum to 100
    assert sum(percentages_for('reverse', ['H1', 'H2']).values()) == 70


def test_unknown_structure_falls_back_to_even():
    assert percentages_for('mystery', ['P1', 'P2', 'P3']) == {'p0': 33, 'p1': 33, 'p2': 33}


def test_empty_periods():
    assert percentages_for('standard', []) == {}


@pytest.mark.parametrize('structure', ['standard', 'heavy_final', 'halftime_final'])
@pytest.mark.parametrize('sport', ['nfl', 'nhl', 'mlb', 'ncaab', 'soccer'])
def test_structures_sum_to_100(structure, sport):
    assert sum(percentages_for(structure, period_labels(sport)).values()) == 100


def test_rounding_is_half_up():
    assert round_half_up(12.5) == 13
    assert round_half_up(2.5) == 3
    assert round_half_up(2.4) == 2
    assert payout_amount(1000, 25) == 250
    assert payout_amount(500, 33) == 165


def test_validate_rejects_negative_share():
    periods = [f'P{i}' for i in range(12)]
    with pytest.raises(InvalidPoolConfig) as exc:
        validate_payout_config('heavy_final', periods)
    assert exc.value.fields['period_key'] == 'p11'
    validate_payout_config('heavy_final', QUARTERS)


def test_ot_rule_separate_adds_period():
    assert period_labels('nfl', 'separate') == ['Q1', 'Q2', 'Q3', 'Q4', 'OT']
    assert period_labels('soccer', 'separate') == ['H1', 'H2', 'ET']
    assert period_labels('mlb', 'separate') == ['3rd', '6th', '9th']
    assert period_labels('nfl', 'include_final') == QUARTERS
    assert period_labels('nfl', 'none') == QUARTERS


def test_payout_breakdown_for_pool(make_pool):
    pool = make_pool(denomination=10, payout_structure='heavy_final')
    data = payout_breakdown(pool)
    assert data['total'] == 1000
    assert [row['amount'] for row in data['breakdown']] == [100, 100, 100, 700]
    assert data['breakdown'][3]['period_label'] == 'Q4'
