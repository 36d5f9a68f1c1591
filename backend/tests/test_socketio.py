from squares.services.pools.claims import claim_square, release_square


def _drain(sio_client):
    try:
        sio_client.get_received('/ws')
    except Exception:
        pass


def test_socket_connect_and_join(sio_client, make_pool):
    pool = make_pool()
    # Ensure we are connected to /ws
    if not sio_client.is_connected('/ws'):
        sio_client.connect(namespace='/ws')
    assert sio_client.is_connected('/ws')
    _drain(sio_client)

    sio_client.emit('join_pool', {'pool_id': pool.id}, namespace='/ws')
    received = sio_client.get_received('/ws')
    assert any(pkt['name'] == 'joined' and pkt['args'][0]['room'] == f'pool:{pool.id}' for pkt in received)


def test_join_unknown_pool_errors(sio_client):
    _drain(sio_client)
    sio_client.emit('join_pool', {'pool_id': 12345}, namespace='/ws')
    received = sio_client.get_received('/ws')
    assert [pkt['name'] for pkt in received] == ['error']


def test_pool_room_gets_state_updates(sio_client, make_pool, make_player):
    pool = make_pool()
    alice = make_player('Alice', pool)
    sio_client.emit('join_pool', {'pool_id': pool.id}, namespace='/ws')
    _drain(sio_client)

    claim_square(pool.id, 4, 2, alice.id, alice.id, 'player')
    received = sio_client.get_received('/ws')
    updates = [pkt for pkt in received if pkt['name'] == 'state_update']
    assert updates and updates[0]['args'][0]['pool_id'] == pool.id

    sio_client.emit('leave_pool', {'pool_id': pool.id}, namespace='/ws')
    _drain(sio_client)
    release_square(pool.id, 4, 2, alice.id, 'player')
    assert not [pkt for pkt in sio_client.get_received('/ws') if pkt['name'] == 'state_update']


def test_player_room_gets_notifications(sio_client, make_pool, make_player):
    pool = make_pool()
    alice = make_player('Alice', pool)
    sio_client.emit('join_player', {'token': alice.auth_token}, namespace='/ws')
    _drain(sio_client)

    claim_square(pool.id, 0, 9, alice.id, 'admin', 'admin')
    release_square(pool.id, 0, 9, 'admin', 'admin')
    notes = [pkt['args'][0] for pkt in sio_client.get_received('/ws') if pkt['name'] == 'notification']
    assert [n['kind'] for n in notes] == ['square_claimed', 'square_released']
    assert notes[1]['row'] == 0 and notes[1]['col'] == 9


def test_join_player_rejects_bad_token(sio_client):
    _drain(sio_client)
    sio_client.emit('join_player', {'token': 'nope'}, namespace='/ws')
    assert sio_client.get_received('/ws')[0]['name'] == 'error'


def test_ping_pong(sio_client):
    _drain(sio_client)
    sio_client.emit('ping', {'n': 1}, namespace='/ws')
    received = sio_client.get_received('/ws')
    assert received[0]['name'] == 'pong'
    assert received[0]['args'][0] == {'n': 1}
