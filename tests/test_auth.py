from conftest import PASSWORD


def test_login_returns_token_and_user(client):
    resp = client.post('/api/login', json={'username': 'Admin', 'password': PASSWORD})
    assert resp.status_code == 200
    body = resp.get_json()
    assert body['token']
    assert body['user'] == {'id': body['user']['id'], 'username': 'admin', 'role': 'Admin'}


def test_login_rejects_bad_password(client):
    resp = client.post('/api/login', json={'username': 'admin', 'password': 'wrong-password'})
    assert resp.status_code == 401


def test_login_requires_both_fields(client):
    assert client.post('/api/login', json={'username': 'admin'}).status_code == 400


def test_missing_token_asks_client_to_clear_session(client):
    resp = client.get('/api/customers')
    assert resp.status_code == 401
    assert resp.get_json()['clear_session'] is True


def test_tampered_token_is_rejected(client, clerk_headers):
    headers = {'Authorization': clerk_headers['Authorization'] + 'x'}
    assert client.get('/api/me', headers=headers).status_code == 401


def test_me_and_logout(client, clerk_headers):
    assert client.get('/api/me', headers=clerk_headers).get_json()['role'] == 'Clerk'
    assert client.post('/api/logout', headers=clerk_headers).status_code == 200


def test_user_management_is_admin_only(client, admin_headers, clerk_headers):
    assert client.get('/api/users', headers=clerk_headers).status_code == 403

    resp = client.post('/api/users', json={'username': 'newbie', 'password': 'abcdef', 'role': 'Viewer'},
                       headers=admin_headers)
    assert resp.status_code == 201
    user_id = resp.get_json()['id']

    resp = client.post('/api/users', json={'username': 'NEWBIE', 'password': 'abcdef', 'role': 'Viewer'},
                       headers=admin_headers)
    assert resp.status_code == 409

    resp = client.put(f'/api/users/{user_id}', json={'role': 'Clerk'}, headers=admin_headers)
    assert resp.get_json()['role'] == 'Clerk'
    assert client.delete(f'/api/users/{user_id}', headers=admin_headers).status_code == 200


def test_admin_cannot_delete_self(client, admin_headers):
    me = client.get('/api/me', headers=admin_headers).get_json()
    resp = client.delete(f"/api/users/{me['id']}", headers=admin_headers)
    assert resp.status_code == 400
