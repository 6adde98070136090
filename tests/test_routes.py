import io
import json

def test_health(test_client):
    response = test_client.get('/health')
    assert response.status_code == 200
    assert response.get_json() == {'status': 'ok'}

def test_import_lorebook_file(test_client):
    book = {'entries': {'0': {'uid': 0, 'key': ['harbor'], 'content': 'Salt and tar.'}}}
    response = test_client.post('/lorebooks/import', data={
        'file': (io.BytesIO(json.dumps(book).encode('utf-8')), 'Harbor.json'),
        'user_id': 'route-user',
    }, content_type='multipart/form-data')

    assert response.status_code == 201
    assert response.get_json()['lorebook']['name'] == 'Harbor'

def test_import_requires_file(test_client):
    response = test_client.post('/lorebooks/import', data={}, content_type='multipart/form-data')
    assert response.status_code == 400

def test_import_rejects_invalid_lorebook(test_client):
    response = test_client.post('/lorebooks/import', data={
        'file': (io.BytesIO(b'{"entries": 5}'), 'bad.json'),
    }, content_type='multipart/form-data')
    assert response.status_code == 400
    assert response.get_json()['error'].startswith('Invalid lorebook')
