from schema_sync.core import parse_sql

SCHEMA_SQL = 'CREATE TABLE IF NOT EXISTS "Users" (id uuid PRIMARY KEY, email varchar(255) UNIQUE NOT NULL);'


def test_health(client):
    response = client.get('/api/health')
    assert response.status_code == 200
    assert response.get_json() == {'status': 'ok'}


def test_parse_sql(client):
    response = client.post('/api/parse_sql', json={'sql': SCHEMA_SQL})
    assert response.status_code == 200
    data = response.get_json()
    assert data['graph']['tables'][0]['name'] == 'Users'
    assert data['warnings'] == []


def test_parse_sql_error(client):
    response = client.post('/api/parse_sql', json={'sql': 'CREATE TABLE broken'})
    assert response.status_code == 400
    assert response.get_json()['errorType'] == 'ParseError'


def test_validate_sql(client):
    response = client.post('/api/validate_sql', json={'sql': 'CREATE TABLE A (id int, id int);'})
    data = response.get_json()
    assert data['isValid'] is False
    assert 'Duplicate column name "id" in table A' in data['errors']


def test_normalize_sql(client):
    response = client.post('/api/normalize_sql', json={'sql': 'CREATE TABLE order items (id int);'})
    data = response.get_json()
    assert data['changed'] is True
    assert data['sql'] == 'CREATE TABLE "order items" (id int);'


def test_generate_sql_from_request_graph(client, orders_graph):
    response = client.post('/api/generate_sql', json={
        'graph': orders_graph.to_dict(),
        'settings': {'caseSensitiveIdentifiers': True, 'useInlineConstraints': False},
    })
    assert response.status_code == 200
    sql = response.get_json()['sql']
    assert 'ALTER TABLE "Orders" ADD CONSTRAINT fk_orders_customer_id_customers_id' in sql


def test_generate_sql_rejects_unknown_dialect(client, orders_graph):
    response = client.post('/api/generate_sql', json={'graph': orders_graph.to_dict(), 'dialect': 'oracle'})
    assert response.status_code == 400
    assert 'oracle' in response.get_json()['error']


def test_apply_sql_with_graph_is_stateless(client, web_app, blog_sql):
    previous, _ = parse_sql(blog_sql)
    response = client.post('/api/apply_sql', json={'sql': blog_sql, 'graph': previous.to_dict()})
    assert response.status_code == 200
    data = response.get_json()
    assert data['graph']['tables'][0]['id'] == previous.tables[0].id
    assert web_app.store.snapshot().is_empty(), "A request graph must not touch the server store"


def test_apply_sql_updates_server_store(client):
    response = client.post('/api/apply_sql', json={'sql': SCHEMA_SQL})
    assert response.status_code == 200

    schema = client.get('/api/schema').get_json()
    assert [t['name'] for t in schema['graph']['tables']] == ['Users']
    assert schema['isApplying'] is False
    assert schema['sql'] == SCHEMA_SQL


def test_apply_sql_validation_error(client):
    response = client.post('/api/apply_sql', json={'sql': 'CREATE TABLE A (id int, id int);'})
    assert response.status_code == 400
    data = response.get_json()
    assert data['errorType'] == 'ValidationError'
    assert 'Duplicate column name "id" in table A' in data['findings']


def test_apply_sql_while_busy_is_a_conflict(client, web_app):
    web_app.store.apply_lock.acquire()
    try:
        response = client.post('/api/apply_sql', json={'sql': SCHEMA_SQL})
    finally:
        web_app.store.apply_lock.release()
    assert response.status_code == 409


def test_export_dot(client, orders_graph):
    response = client.post('/api/export_dot', json={'graph': orders_graph.to_dict()})
    assert response.status_code == 200
    assert response.get_json()['dot'].startswith('digraph')


def test_generate_schema_requires_description(client):
    response = client.post('/api/generate_schema', json={'description': '  '})
    assert response.status_code == 400


def test_generate_schema_requires_api_key(client, web_app, monkeypatch):
    monkeypatch.setitem(web_app.app.config, 'AI_API_KEY', '')
    response = client.post('/api/generate_schema', json={'description': 'a blog'})
    assert response.status_code == 503


def test_generate_schema(client, web_app, monkeypatch, fake_post, chat_response):
    monkeypatch.setitem(web_app.app.config, 'AI_API_KEY', 'test-key')
    fake_post.responses.append(chat_response("```sql\nCREATE TABLE posts (id serial PRIMARY KEY);\n```"))

    response = client.post('/api/generate_schema', json={'description': 'a blog'})

    assert response.status_code == 200
    data = response.get_json()
    assert data['sql'] == 'CREATE TABLE posts (id serial PRIMARY KEY);'
    assert data['graph']['tables'][0]['name'] == 'posts'
    assert 'a blog' in fake_post.calls[0]['json']['messages'][0]['content']


def test_generate_schema_provider_failure(client, web_app, monkeypatch, fake_post, error_response):
    monkeypatch.setitem(web_app.app.config, 'AI_API_KEY', 'bad-key')
    fake_post.responses.append(error_response(401, 'invalid api key'))

    response = client.post('/api/generate_schema', json={'description': 'a blog'})

    assert response.status_code == 502
    assert response.get_json()['errorType'] == 'CompletionError'


def test_generate_schema_uses_configured_model(client, web_app, monkeypatch, fake_post, chat_response):
    monkeypatch.setitem(web_app.app.config, 'AI_API_KEY', 'test-key')
    monkeypatch.setitem(web_app.app.config, 'AI_MODEL', 'custom-model')
    fake_post.responses.append(chat_response("CREATE TABLE posts (id serial PRIMARY KEY);"))

    response = client.post('/api/generate_schema', json={'description': 'a blog'})

    assert response.status_code == 200
    assert fake_post.calls[0]['json']['model'] == 'custom-model'
    assert web_app.config.get_ai_config(web_app.app.config)['model'] == 'custom-model'
