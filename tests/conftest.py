"""
共用的 pytest fixtures

app / client 用 TestingConfig (SQLite 記憶體資料庫), 每個測試都是全新的資料庫。
make_user 會註冊並登入一個使用者, 回傳帶有 Authorization header 的 AuthUser。
"""

from __future__ import annotations

from dataclasses import dataclass

import pytest

from app import create_app
from config import TestingConfig
from models import db


@dataclass
class AuthUser:
    id: int
    email: str
    username: str
    headers: dict


@pytest.fixture
def app():
    app = create_app(TestingConfig)
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_user(client):
    """註冊 + 登入, 可以呼叫多次建立多個使用者"""
    counter = {'n': 0}

    def _make_user(username=None, password='password123'):
        counter['n'] += 1
        username = username or f'user{counter["n"]}'
        email = f'{username}@example.com'

        resp = client.post('/auth/register', json={
            'email': email,
            'password': password,
            'username': username
        })
        assert resp.status_code == 201, resp.get_json()

        resp = client.post('/auth/login', json={'email': email, 'password': password})
        assert resp.status_code == 200, resp.get_json()
        body = resp.get_json()

        return AuthUser(
            id=body['user']['id'],
            email=email,
            username=username,
            headers={'Authorization': f'Bearer {body["access_token"]}'}
        )

    return _make_user


@pytest.fixture
def user(make_user):
    return make_user('alice')


@pytest.fixture
def other_user(make_user):
    return make_user('bob')


@pytest.fixture
def project(client, user):
    resp = client.post('/projects', json={'name': 'Demo Project'}, headers=user.headers)
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()['project']


@pytest.fixture
def create_task(client, user):
    def _create_task(headers=None, **fields):
        payload = {'title': 'Write report'}
        payload.update(fields)
        resp = client.post('/tasks', json=payload, headers=headers or user.headers)
        assert resp.status_code == 201, resp.get_json()
        return resp.get_json()['task']

    return _create_task
