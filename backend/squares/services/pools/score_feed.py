"""Live score feed for pools linked to an external game.

The feed is a convenience on top of manual score entry: anything it
enters goes through ``enter_score`` like an admin would, and any feed
failure is logged and skipped.
"""
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set, Tuple

import requests
from flask import current_app

from squares import socketio
from squares.models import Pool, Score
from .sports import SPORTS, period_key, period_labels
from .winners import enter_score, finish_pool, regulation_scored

ESPN_SPORTS = {
    'nfl': 'football/nfl',
    'nba': 'basketball/nba',
    'nhl': 'hockey/nhl',
    'mlb': 'baseball/mlb',
    'ncaaf': 'football/college-football',
    'ncaab': 'basketball/mens-college-basketball',
    'soccer': 'soccer/usa.1',
}

FEED_STATES = {'pre': 'scheduled', 'in': 'in_progress', 'post': 'final'}

# Feed period after which each regulation period is complete, when it is
# not simply 1..n (baseball pays on innings 3, 6 and 9)
PERIOD_BOUNDARIES = {'mlb': [3, 6, 9]}

_scheduled_pools: Set[int] = set()


@dataclass(frozen=True)
class FeedScore:
    away_score: int
    home_score: int
    status: str
    period: int = 0
    away_lines: List[int] = field(default_factory=list)
    home_lines: List[int] = field(default_factory=list)

    def score_through(self, boundary: int) -> Tuple[int, int]:
        """Cumulative (away, home) score at the end of feed period ``boundary``."""
        return sum(self.away_lines[:boundary]), sum(self.home_lines[:boundary])


def _to_int(value) -> int:
    if value in (None, ''):
        return 0
    return int(float(value))


def _line_values(competitor) -> List[int]:
    lines = []
    for line in competitor.get('linescores') or []:
        lines.append(_to_int(line.get('value', line.get('displayValue'))))
    return lines


def parse_summary(payload: dict) -> Optional[FeedScore]:
    """Pull the score out of an ESPN-style summary document."""
    competition = (payload.get('header', {}).get('competitions') or [None])[0]
    if not competition:
        return None
    sides = {c.get('homeAway'): c for c in competition.get('competitors') or []}
    if 'home' not in sides or 'away' not in sides:
        return None
    status = competition.get('status') or {}
    state = (status.get('type') or {}).get('state')
    return FeedScore(
        away_score=_to_int(sides['away'].get('score')),
        home_score=_to_int(sides['home'].get('score')),
        status=FEED_STATES.get(state, 'scheduled'),
        period=_to_int(status.get('period')),
        away_lines=_line_values(sides['away']),
        home_lines=_line_values(sides['home']),
    )


class ScoreFeedClient:
    def __init__(self, base_url: str, timeout: int = 10):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.session = requests.Session()

    def fetch_score(self, sport: str, external_game_id: str) -> Optional[FeedScore]:
        path = ESPN_SPORTS.get(sport)
        if path is None:
            return None
        url = f"{self.base_url}/{path}/summary"
        try:
            response = self.session.get(url, params={'event': external_game_id}, timeout=self.timeout)
            response.raise_for_status()
            return parse_summary(response.json())
        except (requests.RequestException, ValueError, TypeError, AttributeError) as exc:
            current_app.logger.warning(f"[feed] sport={sport} game={external_game_id} fetch failed: {exc}")
            return None


def client_from_config(config) -> ScoreFeedClient:
    return ScoreFeedClient(
        config.get('SCORE_FEED_BASE_URL', 'https://site.api.espn.com/apis/site/v2/sports'),
        int(config.get('SCORE_FEED_TIMEOUT_SEC', 10)),
    )


def period_targets(pool: Pool) -> List[Tuple[str, str, Optional[int]]]:
    """(key, label, feed boundary) for each paying period.

    A boundary of None means the period is scored from the final total.
    """
    regulation = list(SPORTS.get(pool.sport, SPORTS['custom'])['periods'])
    boundaries = PERIOD_BOUNDARIES.get(pool.sport, list(range(1, len(regulation) + 1)))
    labels = period_labels(pool.sport, pool.ot_rule)
    targets = []
    for i, label in enumerate(labels):
        boundary = boundaries[i] if i < len(boundaries) else None
        if i == len(regulation) - 1 and pool.ot_rule == 'include_final':
            boundary = None
        targets.append((period_key(i), label, boundary))
    return targets


def sync_pool_score(pool_id: int, client: Optional[ScoreFeedClient] = None) -> List[str]:
    """Enter every period the feed shows as complete and the pool lacks.

    Returns the period keys entered.
    """
    pool = Pool.query.filter_by(id=pool_id).first()
    if pool is None or not pool.external_game_id or not pool.is_locked:
        return []
    if pool.status not in ('locked', 'in_progress'):
        return []

    client = client or client_from_config(current_app.config)
    feed = client.fetch_score(pool.sport, pool.external_game_id)
    if feed is None:
        return []

    regulation = len(SPORTS.get(pool.sport, SPORTS['custom'])['periods'])
    regulation_end = PERIOD_BOUNDARIES.get(pool.sport, [regulation])[-1]
    scored = {key for (key,) in Score.query.with_entities(Score.period_key).filter_by(pool_id=pool.id)}
    entered = []
    for index, (key, label, boundary) in enumerate(period_targets(pool)):
        if key in scored:
            continue
        if index >= regulation and feed.period <= regulation_end:
            # no overtime was played (yet)
            break
        if boundary is None:
            if feed.status != 'final':
                break
            away, home = feed.away_score, feed.home_score
        else:
            complete = feed.status == 'final' or feed.period > boundary
            if not complete or len(feed.away_lines) < boundary or len(feed.home_lines) < boundary:
                break
            away, home = feed.score_through(boundary)
        enter_score(pool.id, key, away, home, period_label=label, actor_type='system')
        entered.append(key)

    if feed.status == 'final' and pool.status == 'in_progress' and regulation_scored(pool):
        finish_pool(pool.id, actor_type='system')

    if entered:
        current_app.logger.info(f"[feed] pool={pool.id} entered={','.join(entered)} feed_status={feed.status}")
    return entered


def _sync_finished(pool_id: int) -> bool:
    pool = Pool.query.filter_by(id=pool_id).first()
    if pool is None or pool.status in ('final', 'cancelled'):
        return True
    last_key = period_key(len(period_labels(pool.sport, pool.ot_rule)) - 1)
    return Score.query.filter_by(pool_id=pool_id, period_key=last_key).first() is not None


def schedule_score_sync(app, pool_id: int) -> None:
    """Start the background poller for a pool's linked game.

    - No-ops in TESTING mode or when the interval is 0
    - Ensures a single worker per pool
    - Stops once the last period is scored or the pool is final or cancelled
    """
    if app.config.get('TESTING'):
        return
    interval = int(app.config.get('SCORE_SYNC_INTERVAL_SEC', 60))
    if interval <= 0:
        return
    if pool_id in _scheduled_pools:
        app.logger.info(f"[feed-skip] pool={pool_id} already polling")
        return
    _scheduled_pools.add(pool_id)
    app.logger.info(f"[feed-start] pool={pool_id} interval={interval}s")

    def _worker(pid: int, delay: int):
        client = client_from_config(app.config)
        try:
            while True:
                time.sleep(delay)
                with app.app_context():
                    try:
                        sync_pool_score(pid, client)
                    except Exception as exc:
                        app.logger.warning(f"[feed] pool={pid} sync failed: {exc}")
                    if _sync_finished(pid):
                        app.logger.info(f"[feed-stop] pool={pid}")
                        return
        finally:
            _scheduled_pools.discard(pid)

    socketio.start_background_task(_worker, pool_id, interval)


def resume_score_syncs(app) -> Dict[int, str]:
    """Restart pollers for linked pools that are still being played."""
    with app.app_context():
        pools = Pool.query.filter(
            Pool.external_game_id.isnot(None),
            Pool.status.in_(('locked', 'in_progress')),
        ).all()
        ids = {pool.id: pool.external_game_id for pool in pools}
    for pool_id in ids:
        schedule_score_sync(app, pool_id)
    return ids
