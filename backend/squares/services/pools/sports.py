SPORTS = {
    'nfl': {'name': 'NFL', 'periods': ['Q1', 'Q2', 'Q3', 'Q4'], 'period_type': 'quarter', 'has_ot': True},
    'nba': {'name': 'NBA', 'periods': ['Q1', 'Q2', 'Q3', 'Q4'], 'period_type': 'quarter', 'has_ot': True},
    'nhl': {'name': 'NHL', 'periods': ['P1', 'P2', 'P3'], 'period_type': 'period', 'has_ot': True},
    'mlb': {'name': 'MLB', 'periods': ['3rd', '6th', '9th'], 'period_type': 'inning', 'has_ot': False},
    'ncaaf': {'name': 'NCAAF', 'periods': ['Q1', 'Q2', 'Q3', 'Q4'], 'period_type': 'quarter', 'has_ot': True},
    'ncaab': {'name': 'NCAAB', 'periods': ['H1', 'H2'], 'period_type': 'half', 'has_ot': True},
    'soccer': {'name': 'Soccer', 'periods': ['H1', 'H2'], 'period_type': 'half', 'has_ot': True, 'ot_label': 'ET'},
    'custom': {'name': 'Custom', 'periods': ['Q1', 'Q2', 'Q3', 'Q4'], 'period_type': 'quarter', 'has_ot': False},
}

PAYOUT_STRUCTURES = ('standard', 'heavy_final', 'halftime_final', 'reverse')
OT_RULES = ('include_final', 'separate', 'none')


def period_labels(sport: str, ot_rule: str = 'include_final') -> list:
    """Ordered period labels that pay out for a sport.

    Only the ``separate`` rule adds a period: overtime pays on its own
    share. Under ``include_final`` the final period is scored with overtime
    points included; under ``none`` overtime points are ignored and the
    final period is scored at the end of regulation.
    """
    config = SPORTS.get(sport, SPORTS['custom'])
    labels = list(config['periods'])
    if ot_rule == 'separate' and config['has_ot']:
        labels.append(config.get('ot_label', 'OT'))
    return labels


def period_key(index: int) -> str:
    return f'p{index}'
