import json

import pytest
from lorekeeper.events import SocketIOEventType
from lorekeeper.extensions import socketio

BOOK = {
    'entries': {
        '0': {'uid': 0, 'key': ['dragon'], 'content': 'Dragons are ancient.', 'order': 2},
        '1': {'uid': 1, 'key': ['ancient'], 'content': 'Ancient ruins lie north.', 'order': 1},
    },
    'recursive': True,
    'scan_depth': 1,
}

@pytest.fixture(scope='module')
def socketio_client(app, test_client):
    return socketio.test_client(app, flask_test_client=test_client)

def request(client, event, payload=None):
    client.get_received()
    if payload is None:
        client.emit(event)
    else:
        client.emit(event, payload)
    received = client.get_received()
    assert len(received) == 1
    return received[0]

def test_socketio_connection(socketio_client):
    assert socketio_client.is_connected()

def test_ping(socketio_client):
    received = request(socketio_client, SocketIOEventType.PING)
    assert received['name'] == SocketIOEventType.PONG

def test_lorebook_flow(socketio_client):
    chat = request(socketio_client, SocketIOEventType.CHAT_CREATE_REQUEST, {'name': 'Socket chat', 'session_id': 's1'})
    chat_id = chat['args'][0]['chat']['id']

    imported = request(socketio_client, SocketIOEventType.LOREBOOK_IMPORT_REQUEST, {
        'file_data': json.dumps(BOOK),
        'file_name': 'Socket Book.json',
        'session_id': 's1',
    })
    assert imported['name'] == SocketIOEventType.LOREBOOK_IMPORT
    lorebook = imported['args'][0]['lorebook']
    assert lorebook['name'] == 'Socket Book'

    listed = request(socketio_client, SocketIOEventType.LOREBOOK_LIST_REQUEST, {'session_id': 's1'})
    assert [item['id'] for item in listed['args'][0]['lorebooks']] == [lorebook['id']]

    applied = request(socketio_client, SocketIOEventType.LOREBOOK_APPLY_REQUEST, {
        'chat_id': chat_id,
        'lorebook_id': lorebook['id'],
        'session_id': 's1',
    })
    assert applied['args'][0]['message'] == 'success'

    scanned = request(socketio_client, SocketIOEventType.LOREBOOK_SCAN_REQUEST, {
        'chat_id': chat_id,
        'text': 'a dragon appeared',
        'session_id': 's1',
    })
    result = scanned['args'][0]['result']
    assert [entry['id'] for entry in result['activated_entries']] == ['0', '1']
    assert result['text'] == 'Dragons are ancient.\nAncient ruins lie north.'

    stats = request(socketio_client, SocketIOEventType.LOREBOOK_STATS_REQUEST, {'id': lorebook['id'], 'session_id': 's1'})
    assert stats['args'][0]['stats']['active_chats'] == 1

    removed = request(socketio_client, SocketIOEventType.LOREBOOK_REMOVE_REQUEST, {
        'chat_id': chat_id,
        'lorebook_id': lorebook['id'],
    })
    assert removed['args'][0]['message'] == 'success'

    active = request(socketio_client, SocketIOEventType.LOREBOOK_ACTIVE_LIST_REQUEST, {'chat_id': chat_id})
    assert active['args'][0]['lorebooks'] == []

def test_import_errors_are_emitted(socketio_client):
    received = request(socketio_client, SocketIOEventType.LOREBOOK_IMPORT_REQUEST, {
        'file_data': json.dumps({'entries': {'0': {'key': 3}}}),
        'file_name': 'broken.json',
    })
    payload = received['args'][0]
    assert payload['error'].startswith('Invalid lorebook')
    assert payload['errors']

def test_missing_fields_are_reported(socketio_client):
    received = request(socketio_client, SocketIOEventType.LOREBOOK_SCAN_REQUEST, {'text': 'dragon'})
    assert received['args'][0]['error'] == "Missing required field: 'chat_id'"

def test_unknown_lorebook(socketio_client):
    received = request(socketio_client, SocketIOEventType.LOREBOOK_REQUEST, {'id': 'missing'})
    assert 'not found' in received['args'][0]['error']
