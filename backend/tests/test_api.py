AUTH = {'Authorization': 'Bearer test-webhook-secret'}


def test_index(client):
    res = client.get('/')
    assert res.status_code == 200


def test_health_reports_counts(client):
    res = client.get('/health')
    assert res.status_code == 200
    data = res.get_json()
    assert data['status'] == 'ok'
    assert data['rooms'] == 0


def test_list_categories(client):
    res = client.get('/api/categories')
    assert res.status_code == 200
    ids = [c['id'] for c in res.get_json()]
    assert ids == ['just_friends', 'couples', 'family', 'deep_talk']


def test_get_category(client):
    res = client.get('/api/categories/deep_talk')
    assert res.status_code == 200
    data = res.get_json()
    assert data['isPremium'] is True
    assert data['coinsRequired'] == 2
    assert data['labels']['category_en'] == 'Deep Talk'

    assert client.get('/api/categories/nope').status_code == 404


def test_webhook_requires_secret(client):
    body = {'appUserId': 'user-1', 'amount': 10}
    assert client.post('/api/coins/webhook', json=body).status_code == 401
    res = client.post('/api/coins/webhook', json=body, headers={'Authorization': 'Bearer wrong'})
    assert res.status_code == 401
    assert client.get('/api/coins/user-1').get_json()['balance'] == 0


def test_webhook_credits_once_per_transaction(client):
    body = {'appUserId': 'user-1', 'amount': 25, 'transactionId': 'order-77'}

    first = client.post('/api/coins/webhook', json=body, headers=AUTH)
    second = client.post('/api/coins/webhook', json=body, headers=AUTH)

    assert first.status_code == 200
    assert first.get_json()['newBalance'] == 25
    assert second.status_code == 200
    assert second.get_json()['duplicate'] is True
    balance = client.get('/api/coins/user-1').get_json()
    assert balance['balance'] == 25
    assert balance['version'] == 1


def test_webhook_rejects_bad_amounts(client):
    for amount in (-5, 0, 200000, 'ten'):
        res = client.post('/api/coins/webhook', json={'appUserId': 'user-1', 'amount': amount}, headers=AUTH)
        assert res.status_code == 400
        assert res.get_json()['code'] == 'ValidationError'
    assert client.get('/api/coins/user-1').get_json()['balance'] == 0


def test_webhook_rejects_transaction_id_of_another_user(client):
    client.post('/api/coins/webhook', json={'appUserId': 'user-1', 'amount': 5, 'transactionId': 'order-1'},
                headers=AUTH)

    res = client.post('/api/coins/webhook', json={'appUserId': 'user-2', 'amount': 5, 'transactionId': 'order-1'},
                      headers=AUTH)

    assert res.status_code == 400
    assert res.get_json()['code'] == 'ValidationError'
    assert client.get('/api/coins/user-2').get_json()['balance'] == 0
