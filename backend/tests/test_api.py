from squares import db
from squares.models import Player


def _create_pool(client, **overrides):
    body = {'name': 'Super Bowl', 'away_team': 'KC', 'home_team': 'PHI', 'denomination': 10}
    body.update(overrides)
    res = client.post('/api/pools', json=body)
    assert res.status_code == 201, res.get_json()
    return res.get_json()


def _create_player(client, name):
    res = client.post('/api/players', json={'name': name})
    assert res.status_code == 201
    return res.get_json()


def _join(client, pool, player):
    res = client.post(f"/api/pools/{pool['id']}/players", json={'player_id': player['id']})
    assert res.status_code == 201
    return res.get_json()


def test_login_logout_flow(client):
    res = client.post('/register', json={'email': 'Host@Example.com', 'password': 'pw'})
    assert res.status_code == 201
    assert client.get('/check_login').get_json()['user']['email'] == 'host@example.com'
    assert client.post('/logout').status_code == 200
    assert client.get('/check_login').status_code == 401

    bad = client.post('/login', json={'email': 'host@example.com', 'password': 'nope'})
    assert bad.status_code == 401
    good = client.post('/login', json={'email': 'host@example.com', 'password': 'pw'})
    assert good.get_json()['success'] is True


def test_pool_routes_require_login(client):
    res = client.get('/api/pools')
    assert res.status_code == 401
    assert res.get_json()['error'] == 'unauthorized'


def test_create_pool_and_view(admin_client):
    pool = _create_pool(admin_client, payout_structure='heavy_final')
    assert pool['status'] == 'open'
    assert pool['total'] == 1000
    assert pool['stats'] == {'available': 100, 'pending': 0, 'claimed': 0}
    assert [p['period_label'] for p in pool['periods']] == ['Q1', 'Q2', 'Q3', 'Q4']

    detail = admin_client.get(f"/api/pools/{pool['id']}").get_json()
    assert len(detail['grid']) == 10
    assert all(cell is None for row in detail['grid'] for cell in row)

    listed = admin_client.get('/api/pools').get_json()
    assert [p['id'] for p in listed] == [pool['id']]

    payouts = admin_client.get(f"/api/pools/{pool['id']}/payouts").get_json()
    assert [b['amount'] for b in payouts['breakdown']] == [100, 100, 100, 700]


def test_create_pool_validation(admin_client):
    res = admin_client.post('/api/pools', json={'name': 'X', 'away_team': 'A', 'home_team': 'B', 'denomination': 7})
    assert res.status_code == 400
    assert res.get_json()['error'] == 'invalid_pool_config'
    assert res.get_json()['field'] == 'denomination'

    res = admin_client.post('/api/pools', json={'name': 'X', 'away_team': 'A'})
    assert res.status_code == 400
    assert res.get_json()['error'] == 'bad_request'


def test_other_admins_pool_is_not_found(admin_client, flask_app):
    pool = _create_pool(admin_client)
    other = flask_app.test_client()
    other.post('/register', json={'email': 'other@example.com', 'password': 'pw'})
    res = other.get(f"/api/pools/{pool['id']}")
    assert res.status_code == 404
    assert res.get_json()['error'] == 'pool_not_found'


def test_claim_conflict_and_coordinates(admin_client):
    pool = _create_pool(admin_client)
    alice = _create_player(admin_client, 'Alice')
    bob = _create_player(admin_client, 'Bob')
    base = f"/api/pools/{pool['id']}/squares"

    res = admin_client.post(f'{base}/claim', json={'row': 2, 'col': 5, 'player_id': alice['id']})
    assert res.status_code == 201
    assert res.get_json()['status'] == 'claimed'

    res = admin_client.post(f'{base}/claim', json={'row': 2, 'col': 5, 'player_id': bob['id']})
    assert res.status_code == 409
    body = res.get_json()
    assert body['error'] == 'square_unavailable'
    assert (body['row'], body['col']) == (2, 5)

    res = admin_client.post(f'{base}/claim', json={'row': 10, 'col': 0, 'player_id': bob['id']})
    assert res.status_code == 400

    grid = admin_client.get(base).get_json()
    assert grid[2][5]['player_name'] == 'Alice'


def test_assign_swap_release(admin_client):
    pool = _create_pool(admin_client)
    alice = _create_player(admin_client, 'Alice')
    bob = _create_player(admin_client, 'Bob')
    base = f"/api/pools/{pool['id']}/squares"
    admin_client.post(f'{base}/claim', json={'row': 0, 'col': 0, 'player_id': alice['id']})

    res = admin_client.post(f'{base}/assign', json={'row': 0, 'col': 0, 'player_id': bob['id']})
    assert res.get_json()['player_id'] == bob['id']

    res = admin_client.post(f'{base}/swap', json={'row_a': 0, 'col_a': 0, 'row_b': 4, 'col_b': 4})
    assert res.get_json()['square_b']['player_id'] == bob['id']

    res = admin_client.post(f'{base}/release', json={'row': 4, 'col': 4})
    assert res.status_code == 200
    assert res.get_json()['previous_player_id'] == bob['id']

    res = admin_client.post(f'{base}/release', json={'row': 4, 'col': 4})
    assert res.status_code == 400
    assert res.get_json()['error'] == 'square_not_owned'


def test_lock_score_and_winners(admin_client):
    pool = _create_pool(admin_client)
    alice = _create_player(admin_client, 'Alice')
    base = f"/api/pools/{pool['id']}"
    admin_client.post(f'{base}/squares/claim', json={'row': 3, 'col': 6, 'player_id': alice['id']})

    res = admin_client.post(f'{base}/scores', json={'period_key': 'p0', 'away_score': 7, 'home_score': 0})
    assert res.status_code == 400
    assert res.get_json()['error'] == 'grid_not_locked'

    locked = admin_client.post(f'{base}/lock').get_json()
    assert locked['status'] == 'locked'
    assert admin_client.post(f'{base}/lock').status_code == 409

    away = locked['col_digits'][6]
    home = locked['row_digits'][3]
    res = admin_client.post(f'{base}/scores', json={'period_key': 'p0', 'away_score': away, 'home_score': home})
    assert res.status_code == 201
    winner = res.get_json()['winner']
    assert winner['player_id'] == alice['id']
    assert winner['payout_amount'] == 250

    res = admin_client.post(f'{base}/scores', json={'period_key': 'p9', 'away_score': 1, 'home_score': 1})
    assert res.status_code == 400

    winners = admin_client.get(f'{base}/winners').get_json()
    assert winners[0]['player_name'] == 'Alice'
    actions = [a['action'] for a in admin_client.get(f'{base}/audit').get_json()]
    assert {'pool_created', 'square_claimed', 'grid_locked', 'score_entered', 'winner_calculated'} <= set(actions)


def test_status_transitions(admin_client):
    pool = _create_pool(admin_client)
    base = f"/api/pools/{pool['id']}"
    assert admin_client.post(f'{base}/status', json={'status': 'suspended'}).get_json()['status'] == 'suspended'
    assert admin_client.post(f'{base}/status', json={'status': 'resume'}).get_json()['status'] == 'open'
    assert admin_client.post(f'{base}/status', json={'status': 'cancelled'}).get_json()['status'] == 'cancelled'
    res = admin_client.post(f'{base}/status', json={'status': 'resume'})
    assert res.status_code == 400
    assert res.get_json()['error'] == 'invalid_status_transition'


def test_payments_and_ledger(admin_client):
    pool = _create_pool(admin_client)
    alice = _create_player(admin_client, 'Alice')
    res = admin_client.post(f"/api/pools/{pool['id']}/payments", json={'player_id': alice['id'], 'squares': 3})
    assert res.status_code == 201
    assert res.get_json()['amount'] == -30

    ledger = admin_client.get(f"/api/players/{alice['id']}/ledger").get_json()
    assert ledger['balance'] == -30
    assert ledger['entries'][0]['type'] == 'buy_in'

    res = admin_client.post(f"/api/pools/{pool['id']}/payments", json={'player_id': 999, 'squares': 1})
    assert res.status_code == 404


def test_portal_claim_and_release(admin_client, client):
    pool = _create_pool(admin_client, approval_threshold=50)
    alice = _create_player(admin_client, 'Alice')
    token = db.session.get(Player, alice['id']).auth_token
    assert alice['portal_url'].endswith(f'/p/{token}')

    assert client.get(f"/api/portal/{token}").get_json()['pools'] == []
    res = client.post(f"/api/portal/{token}/pools/{pool['id']}/claim", json={'row': 1, 'col': 1})
    assert res.status_code == 403
    assert res.get_json()['error'] == 'not_pool_member'
    _join(admin_client, pool, alice)

    home = client.get(f'/api/portal/{token}').get_json()
    assert home['player']['name'] == 'Alice'
    assert [p['id'] for p in home['pools']] == [pool['id']]

    res = client.post(f"/api/portal/{token}/pools/{pool['id']}/claim", json={'row': 1, 'col': 1})
    assert res.status_code == 201
    assert res.get_json()['status'] == 'claimed'

    view = client.get(f"/api/portal/{token}/pools/{pool['id']}").get_json()
    assert view['my_squares'][0]['row'] == 1
    assert view['grid'][1][1]['player_name'] == 'Alice'

    res = client.post(f"/api/portal/{token}/pools/{pool['id']}/release", json={'row': 1, 'col': 1})
    assert res.get_json()['refunded'] == 0

    assert client.get('/api/portal/not-a-token').status_code == 404


def test_pending_approval_routes(admin_client, client):
    pool = _create_pool(admin_client, approval_threshold=1)
    alice = _create_player(admin_client, 'Alice')
    bob = _create_player(admin_client, 'Bob')
    base = f"/api/pools/{pool['id']}/squares"
    admin_client.post(f'{base}/claim', json={'row': 0, 'col': 0, 'player_id': alice['id']})

    _join(admin_client, pool, bob)
    token = db.session.get(Player, bob['id']).auth_token
    res = client.post(f"/api/portal/{token}/pools/{pool['id']}/claim", json={'row': 5, 'col': 5})
    assert res.get_json()['status'] == 'pending'

    pending = admin_client.get(f'{base}/pending').get_json()
    assert [(p['row'], p['col']) for p in pending] == [(5, 5)]

    res = client.post(f"/api/portal/{token}/pools/{pool['id']}/release", json={'row': 5, 'col': 5})
    assert res.status_code == 409
    assert res.get_json()['error'] == 'square_pending'

    res = admin_client.post(f'{base}/approve', json={'row': 5, 'col': 5})
    assert res.get_json()['status'] == 'claimed'
    res = admin_client.post(f'{base}/approve', json={'row': 5, 'col': 5})
    assert res.status_code == 409


def test_edit_pool_settings(admin_client):
    pool = _create_pool(admin_client)
    base = f"/api/pools/{pool['id']}"
    res = admin_client.patch(base, json={'name': 'Renamed', 'tip_pct': '15', 'ot_rule': 'separate'})
    assert res.status_code == 200
    body = res.get_json()
    assert (body['name'], body['tip_pct'], body['ot_rule']) == ('Renamed', 15, 'separate')
    assert [p['period_label'] for p in body['periods']] == ['Q1', 'Q2', 'Q3', 'Q4', 'OT']

    res = admin_client.patch(base, json={'max_per_player': 0})
    assert res.status_code == 400
    assert res.get_json()['field'] == 'max_per_player'

    admin_client.post(f'{base}/lock')
    res = admin_client.patch(base, json={'name': 'Later'})
    assert res.status_code == 400
    assert res.get_json()['error'] == 'pool_not_open'


def test_roster_routes_and_payment_summary(admin_client):
    pool = _create_pool(admin_client)
    alice = _create_player(admin_client, 'Alice')
    bob = _create_player(admin_client, 'Bob')
    base = f"/api/pools/{pool['id']}"
    _join(admin_client, pool, alice)
    admin_client.post(f'{base}/squares/claim', json={'row': 0, 'col': 0, 'player_id': bob['id']})
    admin_client.post(f'{base}/payments', json={'player_id': alice['id'], 'squares': 2})

    roster = admin_client.get(f'{base}/players').get_json()
    assert [(m['name'], m['payment_status']) for m in roster] == [('Alice', 'confirmed'), ('Bob', 'pending')]

    summary = admin_client.get(f'{base}/payments/summary').get_json()
    assert summary['total_squares'] == 1
    assert summary['unpaid_amount'] == 10

    res = admin_client.patch(f"{base}/players/{bob['id']}", json={'paid': 'yes'})
    assert res.status_code == 400
    res = admin_client.patch(f"{base}/players/{bob['id']}", json={'paid': True})
    assert res.get_json()['paid'] is True

    res = admin_client.post(f"{base}/players/{bob['id']}/deadbeat")
    assert res.get_json()['squares_released'] == 1
    res = admin_client.post(f"{base}/players/{bob['id']}/reinstate")
    assert res.get_json()['payment_status'] == 'pending'

    res = admin_client.delete(f"{base}/players/{bob['id']}")
    assert res.get_json()['squares_released'] == 0
    res = admin_client.delete(f"{base}/players/{bob['id']}")
    assert res.status_code == 403


def test_finish_pool_route(admin_client):
    pool = _create_pool(admin_client, ot_rule='separate')
    base = f"/api/pools/{pool['id']}"
    admin_client.post(f'{base}/lock')
    res = admin_client.post(f'{base}/status', json={'status': 'final'})
    assert res.status_code == 400
    assert res.get_json()['error'] == 'invalid_status_transition'

    for key in ('p0', 'p1', 'p2', 'p3'):
        admin_client.post(f'{base}/scores', json={'period_key': key, 'away_score': 3, 'home_score': 0})
    res = admin_client.post(f'{base}/status', json={'status': 'final'})
    assert res.get_json()['status'] == 'final'
