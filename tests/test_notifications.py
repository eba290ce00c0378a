from __future__ import annotations

from datetime import datetime, timedelta

from models import Notification, User, db
from notifications import create_from_template, render_template_text


def add_notification(client, user, **fields):
    payload = {'type': 'system', 'title': 'Hello', 'message': 'World'}
    payload.update(fields)
    resp = client.post('/notifications', json=payload, headers=user.headers)
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()['notification']


def test_render_template_keeps_unknown_placeholders():
    text = '{{actor}} assigned "{{task_title}}" by {{ deadline }}'
    assert render_template_text(text, {'actor': 'alice', 'task_title': 'Docs'}) == \
        'alice assigned "Docs" by {{ deadline }}'


def test_create_from_template(app, user):
    notification = create_from_template(user.id, 'task_completed', {'actor': 'bob', 'task_title': 'Ship'})
    db.session.commit()

    assert notification.type == 'task_completed'
    assert notification.priority == 'low'
    assert notification.message == 'bob completed "Ship"'


def test_create_and_list(client, user):
    add_notification(client, user, title='First', priority='low')
    add_notification(client, user, title='Second', priority='high', metadata={'source': 'test'})

    body = client.get('/notifications', headers=user.headers).get_json()
    assert body['total'] == 2
    assert body['unread_count'] == 2
    assert [n['title'] for n in body['notifications']] == ['Second', 'First']
    assert body['notifications'][0]['metadata'] == {'source': 'test'}

    body = client.get('/notifications?sort_by=priority&sort_order=asc', headers=user.headers).get_json()
    assert [n['priority'] for n in body['notifications']] == ['high', 'low']

    body = client.get('/notifications?priority=low', headers=user.headers).get_json()
    assert [n['title'] for n in body['notifications']] == ['First']


def test_other_users_notifications_are_hidden(client, user, other_user):
    notification = add_notification(client, user)

    assert client.get(f'/notifications/{notification["id"]}', headers=other_user.headers).status_code == 404
    assert client.delete(f'/notifications/{notification["id"]}', headers=other_user.headers).status_code == 404
    assert client.get(f'/notifications/{notification["id"]}', headers=user.headers).status_code == 200


def test_mark_read_and_counts(client, user):
    first = add_notification(client, user)
    add_notification(client, user, type='mention')
    add_notification(client, user, type='mention')

    resp = client.patch(f'/notifications/{first["id"]}/read', headers=user.headers)
    assert resp.status_code == 200
    assert client.get('/notifications/unread-count', headers=user.headers).get_json()['unread_count'] == 2

    resp = client.post('/notifications/read-all', json={'type': 'mention'}, headers=user.headers)
    assert resp.get_json()['updated_count'] == 2
    assert client.get('/notifications/unread-count', headers=user.headers).get_json()['unread_count'] == 0


def test_bulk_read_and_delete(client, user):
    ids = [add_notification(client, user)['id'] for _ in range(3)]

    resp = client.post('/notifications/bulk-read', json={'notification_ids': ids[:2]}, headers=user.headers)
    assert resp.get_json()['updated_count'] == 2

    resp = client.post('/notifications/bulk-delete', json={'notification_ids': ids}, headers=user.headers)
    assert resp.get_json()['deleted_count'] == 3
    assert client.get('/notifications', headers=user.headers).get_json()['total'] == 0


def test_cleanup_only_removes_old_read_notifications(client, user):
    old_read = Notification(user_id=user.id, type='system', title='a', message='a', is_read=True,
                            created_at=datetime.utcnow() - timedelta(days=40))
    old_unread = Notification(user_id=user.id, type='system', title='b', message='b',
                              created_at=datetime.utcnow() - timedelta(days=40))
    recent_read = Notification(user_id=user.id, type='system', title='c', message='c', is_read=True)
    db.session.add_all([old_read, old_unread, recent_read])
    db.session.commit()

    resp = client.post('/notifications/cleanup', headers=user.headers)
    assert resp.status_code == 200
    assert resp.get_json()['deleted_count'] == 1
    assert Notification.query.filter_by(user_id=user.id).count() == 2


def test_stats(client, user):
    add_notification(client, user, type='mention', priority='high')
    add_notification(client, user)

    stats = client.get('/notifications/stats', headers=user.headers).get_json()
    assert stats['total'] == 2
    assert stats['unread'] == 2
    assert stats['today'] == 2
    assert stats['by_type'] == {'mention': 1, 'system': 1}
    assert stats['by_priority'] == {'high': 1, 'medium': 1}


def test_system_notifications_require_admin(client, user, other_user):
    payload = {'title': 'Maintenance', 'message': 'Tonight', 'user_ids': [user.id, other_user.id]}

    assert client.post('/notifications/system', json=payload, headers=user.headers).status_code == 403

    db.session.get(User, user.id).role = 'admin'
    db.session.commit()

    resp = client.post('/notifications/system', json=payload, headers=user.headers)
    assert resp.status_code == 201
    assert resp.get_json()['created_count'] == 2
    assert Notification.query.filter_by(user_id=other_user.id, type='system').count() == 1

    resp = client.post('/notifications/system', json={**payload, 'user_ids': [9999]}, headers=user.headers)
    assert resp.status_code == 400


def test_settings(client, user):
    settings = client.get('/notifications/settings', headers=user.headers).get_json()
    assert settings['notification_types']['mention'] is True

    resp = client.patch('/notifications/settings', json={
        'push_notifications': False,
        'notification_types': {'mention': False}
    }, headers=user.headers)
    assert resp.status_code == 200

    settings = client.get('/notifications/settings', headers=user.headers).get_json()
    assert settings['push_notifications'] is False
    assert settings['notification_types']['mention'] is False
