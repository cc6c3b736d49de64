import json
import os
import sys
from pathlib import Path

import pytest

# Ensure pytest can see the package when run from the project root
sys.path.insert(0, str(Path(__file__).parent.parent))

# The web app picks its config class at import time
os.environ['FLASK_ENV'] = 'testing'

from schema_sync.core import Column, Relationship, SchemaGraph, Table


BLOG_SQL = """
CREATE TYPE post_status AS ENUM ('draft', 'published');

CREATE TABLE IF NOT EXISTS users (
  id serial PRIMARY KEY,
  email varchar(255) UNIQUE NOT NULL,
  name text
);

CREATE TABLE IF NOT EXISTS posts (
  id serial PRIMARY KEY,
  user_id integer NOT NULL REFERENCES users(id) ON DELETE CASCADE,
  status post_status DEFAULT 'draft',
  title varchar(200) NOT NULL
);
"""


@pytest.fixture
def blog_sql():
    """Two tables, one enum and an inline foreign key"""
    return BLOG_SQL


@pytest.fixture
def orders_graph():
    """Orders.customer_id -> Customers.id with mixed-case table names"""
    orders = Table('Orders', table_id='table-orders')
    orders.add_column(Column('id', 'uuid', constraints=['primary']))
    orders.add_column(Column('customer_id', 'uuid'))

    customers = Table('Customers', table_id='table-customers')
    customers.add_column(Column('id', 'uuid', constraints=['primary']))

    edge = Relationship('table-orders', 'source-customer_id', 'table-customers', 'target-id',
                        edge_id='edge-orders-customers')
    return SchemaGraph([orders, customers], [], [edge])


class FakeResponse:
    """Stand-in for requests.Response"""

    def __init__(self, status_code=200, payload=None, lines=None, text=''):
        self.status_code = status_code
        self._payload = payload
        self._lines = list(lines or [])
        self.text = text or (json.dumps(payload) if payload is not None else '')

    def json(self):
        if self._payload is None:
            raise ValueError("No JSON body")
        return self._payload

    def iter_lines(self, decode_unicode=False):
        return iter(self._lines)


@pytest.fixture
def chat_response():
    """Factory for a non-streaming chat-completions response"""
    def build(content, status_code=200):
        return FakeResponse(status_code, {'choices': [{'message': {'content': content}}]})
    return build


@pytest.fixture
def stream_response():
    """Factory for a server-sent-events chat-completions response"""
    def build(chunks, raw_lines=None):
        lines = [f"data: {json.dumps({'choices': [{'delta': {'content': c}}]})}" for c in chunks]
        lines.extend(raw_lines or [])
        lines.append('data: [DONE]')
        return FakeResponse(200, lines=lines)
    return build


@pytest.fixture
def error_response():
    def build(status_code, text='error'):
        return FakeResponse(status_code, text=text)
    return build


@pytest.fixture
def fake_post(monkeypatch):
    """
    Replace requests.post inside the completion module.

    Queue responses (or exceptions to raise) on fake_post.responses;
    keyword arguments of every call are recorded on fake_post.calls.
    """
    from schema_sync.web_app import completion

    def post(url, **kwargs):
        post.calls.append(dict(kwargs, url=url))
        item = post.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    post.calls = []
    post.responses = []
    monkeypatch.setattr(completion.requests, 'post', post)
    return post


@pytest.fixture
def web_app():
    """The Flask module with a fresh server-side store"""
    import schema_sync.web_app.app as app_module

    app_module.app.config['TESTING'] = True
    app_module.store.replace_graph(SchemaGraph(), '')
    app_module.controller.applied_sql = ''
    app_module.controller.editable_sql = ''
    app_module.controller.error = None
    return app_module


@pytest.fixture
def client(web_app):
    with web_app.app.test_client() as test_client:
        yield test_client
