from __future__ import annotations

import pytest
from sqlalchemy.exc import IntegrityError

from errors import ApiError, classify_integrity_error
from models import Tag, db


class FakePgError(Exception):
    def __init__(self, message, pgcode):
        super().__init__(message)
        self.pgcode = pgcode


@pytest.mark.parametrize('orig, expected', [
    (Exception('UNIQUE constraint failed: tags.name'), (409, 'DUPLICATE_ERROR')),
    (FakePgError('duplicate key value', '23505'), (409, 'DUPLICATE_ERROR')),
    (FakePgError('insert or update violates foreign key constraint', '23503'), (400, 'FOREIGN_KEY_ERROR')),
    (Exception('NOT NULL constraint failed: tasks.title'), (400, 'MISSING_RELATION_ERROR')),
    (FakePgError('check constraint', '23514'), (400, 'DATABASE_VALIDATION_ERROR'))
])
def test_classify_integrity_error(orig, expected):
    status, code, message = classify_integrity_error(IntegrityError('INSERT ...', {}, orig))
    assert (status, code) == expected
    assert message


def test_api_error_to_dict():
    error = ApiError(409, 'Conflict', 'SCHEDULE_CONFLICT', {'conflicts': []})
    assert error.to_dict() == {
        'error': 'SCHEDULE_CONFLICT',
        'message': 'Conflict',
        'status': 409,
        'details': {'conflicts': []}
    }
    assert 'details' not in ApiError(404, 'Missing').to_dict()


def test_integrity_error_handler_rolls_back(app, client):
    @app.route('/_duplicate_tag')
    def duplicate_tag():
        db.session.add(Tag(name='dup'))
        db.session.add(Tag(name='dup'))
        db.session.commit()

    resp = client.get('/_duplicate_tag')
    assert resp.status_code == 409
    assert resp.get_json()['error'] == 'DUPLICATE_ERROR'
    assert Tag.query.count() == 0


def test_unknown_route_and_method(client):
    resp = client.get('/does-not-exist')
    assert resp.status_code == 404
    assert resp.get_json()['error'] == 'not_found'

    assert client.delete('/health').status_code == 405


def test_health_and_index(client):
    resp = client.get('/health')
    assert resp.status_code == 200
    assert resp.get_json()['database'] == 'connected'

    resp = client.get('/')
    assert resp.get_json()['version'] == '1.0.0'
    assert resp.headers['X-Content-Type-Options'] == 'nosniff'


@pytest.mark.parametrize('path, status, code', [
    ('/tasks/9999', 404, 'NOT_FOUND'),
    ('/projects/9999', 404, 'NOT_FOUND'),
    ('/tags/9999', 404, 'NOT_FOUND'),
    ('/notifications/9999', 404, 'NOT_FOUND'),
    ('/tasks/9999/subtasks', 404, 'NOT_FOUND')
])
def test_business_errors_share_one_body(client, user, path, status, code):
    resp = client.get(path, headers=user.headers)
    assert resp.status_code == status
    body = resp.get_json()
    assert body['error'] == code
    assert body['status'] == status
    assert body['message'].endswith('not found')


def test_conflict_and_forbidden_bodies(client, user, other_user, create_task):
    client.post('/tags', json={'name': 'ops'}, headers=user.headers)
    resp = client.post('/tags', json={'name': 'OPS'}, headers=user.headers)
    assert resp.get_json() == {
        'error': 'TAG_ALREADY_EXISTS',
        'message': 'Tag "OPS" already exists',
        'status': 409
    }

    task = create_task()
    resp = client.get(f'/tasks/{task["id"]}', headers=other_user.headers)
    assert resp.get_json() == {'error': 'FORBIDDEN', 'message': 'Permission denied', 'status': 403}
