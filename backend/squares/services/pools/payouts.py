"""Payout policies: how a pool's pot is split across scoring periods.

All functions here are pure. Percentages are integers keyed by period
index (``p0``, ``p1``, ...); callers turn them into dollars with
``payout_amount(total, pct)``.
"""
import math
from typing import Dict, List, Sequence

from .errors import InvalidPoolConfig
from .sports import period_key, period_labels

REVERSE_WEIGHTS = [40, 30, 20, 10]


def percentages_for(structure: str, periods: Sequence[str]) -> Dict[str, int]:
    n = len(periods)
    if n == 0:
        return {}
    even = 100 // n
    result: Dict[str, int] = {}

    if structure == 'standard':
        for i in range(n):
            result[period_key(i)] = 100 - even * (n - 1) if i == n - 1 else even
    elif structure == 'heavy_final':
        for i in range(n):
            result[period_key(i)] = 100 - 10 * (n - 1) if i == n - 1 else 10
    elif structure == 'halftime_final':
        half_idx = n // 2 - 1
        for i in range(n):
            if i == n - 1:
                result[period_key(i)] = 75
            elif i == half_idx:
                result[period_key(i)] = 25
            else:
                result[period_key(i)] = 0
    elif structure == 'reverse':
        # Fixed table; sports with other than four periods do not sum to 100.
        for i in range(n):
            result[period_key(i)] = REVERSE_WEIGHTS[i] if i < len(REVERSE_WEIGHTS) else even
    else:
        for i in range(n):
            result[period_key(i)] = even
    return result


def round_half_up(value: float) -> int:
    # Not banker's rounding: 12.5 -> 13
    return math.floor(value + 0.5)


def payout_amount(total: int, pct: int) -> int:
    return round_half_up(total * pct / 100)


def validate_payout_config(structure: str, periods: Sequence[str]) -> None:
    """Reject structures that give a period a negative share."""
    for key, pct in percentages_for(structure, periods).items():
        if pct < 0:
            raise InvalidPoolConfig(
                f'{structure} payouts give {key} a negative share ({pct}%)',
                field='payout_structure',
                period_key=key,
                percentage=pct,
            )


def pool_percentages(pool) -> Dict[str, int]:
    return percentages_for(pool.payout_structure, period_labels(pool.sport, pool.ot_rule))


def payout_breakdown(pool) -> dict:
    labels = period_labels(pool.sport, pool.ot_rule)
    percentages = percentages_for(pool.payout_structure, labels)
    breakdown: List[dict] = []
    for i, label in enumerate(labels):
        key = period_key(i)
        pct = percentages[key]
        breakdown.append({
            'period_key': key,
            'period_label': label,
            'percentage': pct,
            'amount': payout_amount(pool.total, pct),
        })
    return {'total': pool.total, 'breakdown': breakdown}
