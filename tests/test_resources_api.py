def test_list_and_get(client, clerk_headers):
    customers = client.get('/api/customers', headers=clerk_headers).get_json()
    assert [c['name'] for c in customers] == ['Acme Trading', 'Walk-in']

    item = client.get('/api/stock-items/WIDGET', headers=clerk_headers).get_json()
    assert item['material_cost'] == 40.0

    assert client.get('/api/stock-items/NOPE', headers=clerk_headers).status_code == 404


def test_equality_filters(client, clerk_headers):
    branches = client.get('/api/customer-branch?debtor_no=2', headers=clerk_headers).get_json()
    assert [b['br_name'] for b in branches] == ['Counter']

    resp = client.get('/api/customer-branch?debtor_no=abc', headers=clerk_headers)
    assert resp.status_code == 400


def test_pagination(client, clerk_headers):
    body = client.get('/api/payment-terms?page=1&per_page=2', headers=clerk_headers).get_json()
    assert len(body['items']) == 2
    assert body['meta']['total'] == 3
    assert body['meta']['pages'] == 2


def test_create_update_delete_customer(client, clerk_headers):
    resp = client.post('/api/customers', json={'name': 'Beta Stores', 'sales_type': 1, 'discount': 5},
                       headers=clerk_headers)
    assert resp.status_code == 201, resp.get_json()
    debtor_no = resp.get_json()['debtor_no']

    resp = client.put(f'/api/customers/{debtor_no}', json={'phone': '555-0100'}, headers=clerk_headers)
    assert resp.get_json()['phone'] == '555-0100'
    assert resp.get_json()['discount'] == 5.0

    assert client.delete(f'/api/customers/{debtor_no}', headers=clerk_headers).status_code == 200
    assert client.get(f'/api/customers/{debtor_no}', headers=clerk_headers).status_code == 404


def test_invalid_discount_rejected(client, clerk_headers):
    resp = client.post('/api/customers', json={'name': 'Bad', 'discount': 150}, headers=clerk_headers)
    assert resp.status_code == 400


def test_duplicate_price_list_conflicts(client, admin_headers):
    resp = client.post('/api/sales-types', json={'sales_type': 'Retail'}, headers=admin_headers)
    assert resp.status_code == 409


def test_reference_data_writes_need_admin(client, clerk_headers, admin_headers):
    resp = client.post('/api/tax-types', json={'description': 'Levy', 'default_rate': 2}, headers=clerk_headers)
    assert resp.status_code == 403
    resp = client.post('/api/tax-types', json={'description': 'Levy', 'default_rate': 2}, headers=admin_headers)
    assert resp.status_code == 201
    names = [t['description'] for t in client.get('/api/tax-types', headers=admin_headers).get_json()]
    assert 'Levy' in names


def test_viewer_is_read_only(client, viewer_headers):
    assert client.get('/api/stock-items', headers=viewer_headers).status_code == 200
    resp = client.post('/api/stock-items', json={'stock_id': 'X1', 'description': 'X'}, headers=viewer_headers)
    assert resp.status_code == 403


def test_totals_are_read_only(app, client, clerk_headers):
    resp = client.post('/api/direct-invoices', json={
        'debtor_no': 1, 'branch_code': 1, 'date': '2025-03-10',
        'lines': [{'stock_id': 'WIDGET', 'quantity': 1}],
    }, headers=clerk_headers)
    trans_id = resp.get_json()['id']
    resp = client.put(f'/api/debtor-trans/{trans_id}', json={'ov_amount': 1, 'order_no': 5}, headers=clerk_headers)
    body = resp.get_json()
    assert body['ov_amount'] == 90.0
    assert body['order_no'] == 5
