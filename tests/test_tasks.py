from __future__ import annotations

from models import Tag, Notification, ScheduleItem, db


def make_tag(client, user, name):
    resp = client.post('/tags', json={'name': name}, headers=user.headers)
    assert resp.status_code == 201
    return resp.get_json()['tag']


def usage(tag_id):
    db.session.expire_all()
    return db.session.get(Tag, tag_id).usage_count


def add_member(client, owner, project, member, role='member'):
    resp = client.post(f'/projects/{project["id"]}/members', json={
        'user_id': member.id, 'role': role
    }, headers=owner.headers)
    assert resp.status_code == 201, resp.get_json()


# ── create / read ────────────────────────────────────────────────────────────


def test_create_task_with_tags_increments_usage(client, user, create_task):
    backend = make_tag(client, user, 'backend')
    urgent = make_tag(client, user, 'urgent')

    task = create_task(tag_ids=[backend['id'], urgent['id']])

    assert {t['name'] for t in task['tags']} == {'backend', 'urgent'}
    assert usage(backend['id']) == 1
    assert usage(urgent['id']) == 1

    history = client.get(f'/tasks/{task["id"]}/history', headers=user.headers).get_json()['history']
    assert [h['action'] for h in history] == ['created']


def test_create_task_with_unknown_tag(client, user):
    resp = client.post('/tasks', json={'title': 'x', 'tag_ids': [42]}, headers=user.headers)
    assert resp.status_code == 400
    assert resp.get_json()['details'] == {'tag_ids': [42]}


def test_create_task_validation(client, user):
    assert client.post('/tasks', json={'title': ''}, headers=user.headers).status_code == 400
    assert client.post('/tasks', json={'title': 'x', 'status': 'blocked'}, headers=user.headers).status_code == 400
    assert client.post('/tasks', json={'title': 'x', 'estimated_hours': 2000}, headers=user.headers).status_code == 400
    assert client.post('/tasks', data='nope', headers=user.headers).status_code == 400


def test_assigning_notifies_assignee(client, user, other_user, project):
    add_member(client, user, project, other_user)

    resp = client.post(f'/projects/{project["id"]}/tasks', json={
        'title': 'Review PR', 'assignee_id': other_user.id
    }, headers=user.headers)
    assert resp.status_code == 201

    notifications = client.get('/notifications', headers=other_user.headers).get_json()['notifications']
    assigned = [n for n in notifications if n['type'] == 'task_assigned']
    assert len(assigned) == 1
    assert 'Review PR' in assigned[0]['message']


def test_assignee_must_be_project_member(client, user, other_user, project):
    resp = client.post(f'/projects/{project["id"]}/tasks', json={
        'title': 'Review PR', 'assignee_id': other_user.id
    }, headers=user.headers)
    assert resp.status_code == 400


def test_task_visibility(client, user, other_user, create_task):
    task = create_task()

    assert client.get(f'/tasks/{task["id"]}', headers=user.headers).status_code == 200
    assert client.get(f'/tasks/{task["id"]}', headers=other_user.headers).status_code == 403
    assert client.get('/tasks/9999', headers=user.headers).status_code == 404

    listed = client.get('/tasks', headers=other_user.headers).get_json()
    assert listed['total'] == 0


def test_former_member_loses_their_project_tasks(client, user, other_user, project):
    add_member(client, user, project, other_user)
    task = client.post(f'/projects/{project["id"]}/tasks', json={
        'title': 'Left behind', 'assignee_id': other_user.id
    }, headers=other_user.headers).get_json()['task']

    resp = client.delete(f'/projects/{project["id"]}/members/{other_user.id}', headers=user.headers)
    assert resp.status_code == 200

    assert client.get(f'/tasks/{task["id"]}', headers=other_user.headers).status_code == 403
    assert client.get('/tasks', headers=other_user.headers).get_json()['total'] == 0
    assert client.get('/tasks/stats/summary', headers=other_user.headers).get_json()['total'] == 0

    assert client.get('/tasks', headers=user.headers).get_json()['total'] == 1


def test_list_filters(client, user, create_task):
    tag = make_tag(client, user, 'docs')
    create_task(title='Write README', priority='high', tag_ids=[tag['id']])
    create_task(title='Fix login', status='in_progress', due_date='2024-06-01T12:00:00')
    create_task(title='Old stuff', status='archived')

    def titles(query):
        body = client.get(f'/tasks{query}', headers=user.headers).get_json()
        return sorted(t['title'] for t in body['tasks'])

    assert titles('') == ['Fix login', 'Write README']
    assert titles('?include_archived=true') == ['Fix login', 'Old stuff', 'Write README']
    assert titles('?status=in_progress,archived') == ['Fix login', 'Old stuff']
    assert titles('?priority=high') == ['Write README']
    assert titles('?tags=docs') == ['Write README']
    assert titles(f'?tags={tag["id"]}') == ['Write README']
    assert titles('?search=readme') == ['Write README']
    assert titles('?due_date_from=2024-05-01T00:00:00&due_date_to=2024-06-30T00:00:00') == ['Fix login']


# ── update ───────────────────────────────────────────────────────────────────


def test_update_replaces_tags_and_adjusts_usage(client, user, create_task):
    a = make_tag(client, user, 'a')
    b = make_tag(client, user, 'b')
    c = make_tag(client, user, 'c')
    task = create_task(tag_ids=[a['id'], b['id']])

    resp = client.patch(f'/tasks/{task["id"]}', json={'tag_ids': [b['id'], c['id']]}, headers=user.headers)
    assert resp.status_code == 200
    assert resp.get_json()['changes']['tag_ids'] == {'old': [a['id'], b['id']], 'new': [b['id'], c['id']]}

    assert usage(a['id']) == 0
    assert usage(b['id']) == 1
    assert usage(c['id']) == 1


def test_done_sets_completed_at_and_notifies_creator(client, user, other_user, project):
    add_member(client, user, project, other_user)
    task = client.post(f'/projects/{project["id"]}/tasks', json={'title': 'Ship it'},
                       headers=user.headers).get_json()['task']

    resp = client.patch(f'/tasks/{task["id"]}/status', json={'status': 'done'}, headers=other_user.headers)
    assert resp.status_code == 200
    assert resp.get_json()['task']['completed_at'] is not None

    types = [n.type for n in Notification.query.filter_by(user_id=user.id).all()]
    assert 'task_completed' in types

    resp = client.patch(f'/tasks/{task["id"]}', json={'status': 'todo'}, headers=user.headers)
    assert resp.get_json()['task']['completed_at'] is None


def test_archive_sets_archived_at(client, user, create_task):
    task = create_task()
    resp = client.patch(f'/tasks/{task["id"]}', json={'status': 'archived'}, headers=user.headers)
    assert resp.get_json()['task']['archived_at'] is not None

    actions = [h['action'] for h in client.get(f'/tasks/{task["id"]}/history', headers=user.headers).get_json()['history']]
    assert actions == ['status_changed', 'created']


def test_update_without_changes(client, user, create_task):
    task = create_task(title='Same')
    resp = client.patch(f'/tasks/{task["id"]}', json={'title': 'Same'}, headers=user.headers)
    assert resp.status_code == 200
    assert resp.get_json()['message'] == 'No changes to update'


def test_viewer_cannot_update(client, user, other_user, project):
    add_member(client, user, project, other_user, role='viewer')
    task = client.post(f'/projects/{project["id"]}/tasks', json={'title': 'Read only'},
                       headers=user.headers).get_json()['task']

    assert client.get(f'/tasks/{task["id"]}', headers=other_user.headers).status_code == 200
    resp = client.patch(f'/tasks/{task["id"]}', json={'title': 'Changed'}, headers=other_user.headers)
    assert resp.status_code == 403


def test_parent_cycle_is_rejected(client, user, create_task):
    parent = create_task(title='Parent')
    child = create_task(title='Child', parent_id=parent['id'])

    resp = client.patch(f'/tasks/{parent["id"]}', json={'parent_id': child['id']}, headers=user.headers)
    assert resp.status_code == 400

    resp = client.patch(f'/tasks/{parent["id"]}', json={'parent_id': parent['id']}, headers=user.headers)
    assert resp.status_code == 400


# ── delete ───────────────────────────────────────────────────────────────────


def test_delete_decrements_usage(client, user, create_task):
    tag = make_tag(client, user, 'temp')
    task = create_task(tag_ids=[tag['id']])
    assert usage(tag['id']) == 1

    resp = client.delete(f'/tasks/{task["id"]}', headers=user.headers)
    assert resp.status_code == 200
    assert usage(tag['id']) == 0
    assert client.get(f'/tasks/{task["id"]}', headers=user.headers).status_code == 404


def test_delete_keeps_schedule_items(client, user, create_task):
    task = create_task(title='Prepare demo')
    resp = client.post(f'/schedules/tasks/{task["id"]}/schedule', json={
        'date': '2024-05-06', 'start_time': '09:00', 'end_time': '10:00'
    }, headers=user.headers)
    assert resp.status_code == 201
    item_id = resp.get_json()['item']['id']

    assert client.delete(f'/tasks/{task["id"]}', headers=user.headers).status_code == 200

    db.session.expire_all()
    item = db.session.get(ScheduleItem, item_id)
    assert item is not None
    assert item.task_id is None

    schedule = client.get('/schedules/daily/2024-05-06', headers=user.headers).get_json()
    assert [(i['title'], i['task']) for i in schedule['items']] == [('Prepare demo', None)]


def test_only_creator_or_admin_can_delete(client, user, other_user, project):
    add_member(client, user, project, other_user)
    task = client.post(f'/projects/{project["id"]}/tasks', json={'title': 'Mine'},
                       headers=user.headers).get_json()['task']

    assert client.delete(f'/tasks/{task["id"]}', headers=other_user.headers).status_code == 403
    assert client.delete(f'/tasks/{task["id"]}', headers=user.headers).status_code == 200


# ── comments / stats ─────────────────────────────────────────────────────────


def test_comment_mentions_notify(client, user, other_user, project):
    add_member(client, user, project, other_user)
    task = client.post(f'/projects/{project["id"]}/tasks', json={'title': 'Discuss'},
                       headers=user.headers).get_json()['task']

    resp = client.post(f'/tasks/{task["id"]}/comments', json={
        'content': f'@{other_user.username} please check, cc @{user.username}'
    }, headers=user.headers)
    assert resp.status_code == 201
    assert resp.get_json()['comment']['mentions'] == [other_user.id]

    mentions = Notification.query.filter_by(user_id=other_user.id, type='mention').all()
    assert len(mentions) == 1
    assert Notification.query.filter_by(user_id=user.id, type='mention').count() == 0

    comments = client.get(f'/tasks/{task["id"]}/comments', headers=user.headers).get_json()
    assert comments['total'] == 1


def test_task_stats(client, user, create_task):
    create_task(status='done', estimated_hours=2, actual_hours=4)
    create_task(status='todo', estimated_hours=3)
    create_task(status='in_progress', due_date='2000-01-01T00:00:00')

    stats = client.get('/tasks/stats/summary', headers=user.headers).get_json()
    assert stats['total'] == 3
    assert stats['by_status']['done'] == 1
    assert stats['overdue'] == 1
    assert stats['total_estimated_hours'] == 5.0
    assert stats['completion_rate'] == 33.3
    assert stats['efficiency'] == 50.0
