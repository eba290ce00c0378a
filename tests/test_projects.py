from __future__ import annotations

from models import DailySchedule, Notification, db


def test_create_project_makes_owner_member(client, user, project):
    assert project['my_role'] == 'owner'
    assert project['status'] == 'planning'
    assert project['color'] == '#3B82F6'
    assert project['member_count'] == 1

    members = client.get(f'/projects/{project["id"]}/members', headers=user.headers).get_json()['members']
    assert [(m['user_id'], m['role']) for m in members] == [(user.id, 'owner')]


def test_create_project_with_members_notifies_them(client, user, other_user):
    resp = client.post('/projects', json={'name': 'Team', 'member_ids': [other_user.id]}, headers=user.headers)
    assert resp.status_code == 201
    assert resp.get_json()['project']['member_count'] == 2
    assert Notification.query.filter_by(user_id=other_user.id, type='project_update').count() == 1


def test_create_project_validates_dates(client, user):
    resp = client.post('/projects', json={
        'name': 'Late',
        'start_date': '2024-06-01T00:00:00',
        'end_date': '2024-05-01T00:00:00'
    }, headers=user.headers)
    assert resp.status_code == 400
    assert 'end_date' in resp.get_json()['details']


def test_update_checks_merged_dates(client, user):
    project = client.post('/projects', json={
        'name': 'Dated', 'start_date': '2024-06-01T00:00:00'
    }, headers=user.headers).get_json()['project']

    resp = client.patch(f'/projects/{project["id"]}', json={'end_date': '2024-05-01T00:00:00'}, headers=user.headers)
    assert resp.status_code == 400

    resp = client.patch(f'/projects/{project["id"]}', json={'status': 'active'}, headers=user.headers)
    assert resp.status_code == 200
    assert resp.get_json()['changes']['status'] == {'old': 'planning', 'new': 'active'}


def test_non_member_gets_403_and_missing_gets_404(client, other_user, project):
    assert client.get(f'/projects/{project["id"]}', headers=other_user.headers).status_code == 403
    assert client.get('/projects/9999', headers=other_user.headers).status_code == 404


def test_list_projects(client, user, other_user, project):
    client.post('/projects', json={'name': 'Archived one'}, headers=user.headers)
    archived = client.get('/projects?search=archived', headers=user.headers).get_json()['projects'][0]
    client.patch(f'/projects/{archived["id"]}', json={'is_archived': True}, headers=user.headers)

    body = client.get('/projects', headers=user.headers).get_json()
    assert [p['name'] for p in body['projects']] == ['Demo Project']

    body = client.get('/projects?include_archived=true', headers=user.headers).get_json()
    assert body['total'] == 2

    assert client.get('/projects', headers=other_user.headers).get_json()['total'] == 0


def test_member_management(client, user, other_user, project):
    url = f'/projects/{project["id"]}/members'

    resp = client.post(url, json={'user_id': other_user.id, 'role': 'viewer'}, headers=user.headers)
    assert resp.status_code == 201
    assert client.post(url, json={'user_id': other_user.id}, headers=user.headers).status_code == 409
    assert client.post(url, json={'user_id': 9999}, headers=user.headers).status_code == 404

    # viewer 不能管理成員
    assert client.patch(f'{url}/{user.id}', json={'role': 'member'}, headers=other_user.headers).status_code == 403

    resp = client.patch(f'{url}/{other_user.id}', json={'role': 'admin'}, headers=user.headers)
    assert resp.status_code == 200
    assert resp.get_json()['member']['role'] == 'admin'

    assert client.patch(f'{url}/{user.id}', json={'role': 'member'}, headers=other_user.headers).status_code == 400
    assert client.delete(f'{url}/{user.id}', headers=other_user.headers).status_code == 400

    # 自己退出
    assert client.delete(f'{url}/{other_user.id}', headers=other_user.headers).status_code == 200
    assert client.get(f'/projects/{project["id"]}', headers=other_user.headers).status_code == 403


def test_only_owner_can_delete(client, user, other_user, project):
    client.post(f'/projects/{project["id"]}/members', json={'user_id': other_user.id, 'role': 'admin'},
                headers=user.headers)

    assert client.delete(f'/projects/{project["id"]}', headers=other_user.headers).status_code == 403
    assert client.delete(f'/projects/{project["id"]}', headers=user.headers).status_code == 200


def test_deleting_project_keeps_tasks(client, user, project):
    task = client.post(f'/projects/{project["id"]}/tasks', json={'title': 'Keep me'},
                       headers=user.headers).get_json()['task']

    client.delete(f'/projects/{project["id"]}', headers=user.headers)

    resp = client.get(f'/tasks/{task["id"]}', headers=user.headers)
    assert resp.status_code == 200
    assert resp.get_json()['project'] is None


def test_deleting_project_detaches_schedules(client, user, project):
    resp = client.post('/schedules/daily', json={'date': '2024-05-06', 'project_id': project['id']},
                       headers=user.headers)
    assert resp.status_code == 201
    schedule_id = resp.get_json()['schedule']['id']

    assert client.delete(f'/projects/{project["id"]}', headers=user.headers).status_code == 200

    db.session.expire_all()
    assert db.session.get(DailySchedule, schedule_id).project_id is None


def test_bulk_update(client, user, other_user, project):
    second = client.post('/projects', json={'name': 'Second'}, headers=user.headers).get_json()['project']
    foreign = client.post('/projects', json={'name': 'Foreign'}, headers=other_user.headers).get_json()['project']

    resp = client.patch('/projects/bulk', json={
        'project_ids': [project['id'], second['id']],
        'updates': {'status': 'active'}
    }, headers=user.headers)
    assert resp.status_code == 200
    assert resp.get_json()['updated_count'] == 2

    resp = client.patch('/projects/bulk', json={
        'project_ids': [project['id'], foreign['id']],
        'updates': {'status': 'active'}
    }, headers=user.headers)
    assert resp.status_code == 403

    resp = client.patch('/projects/bulk', json={
        'project_ids': [project['id'], 9999],
        'updates': {'status': 'active'}
    }, headers=user.headers)
    assert resp.status_code == 404


def test_project_stats(client, user, project):
    url = f'/projects/{project["id"]}/tasks'
    client.post(url, json={'title': 'a', 'status': 'done', 'estimated_hours': 2}, headers=user.headers)
    client.post(url, json={'title': 'b', 'due_date': '2000-01-01T00:00:00'}, headers=user.headers)

    stats = client.get(f'/projects/{project["id"]}/stats', headers=user.headers).get_json()
    assert stats['total_tasks'] == 2
    assert stats['by_status']['done'] == 1
    assert stats['overdue_tasks'] == 1
    assert stats['completion_rate'] == 50.0
    assert stats['estimated_hours'] == 2.0

    listed = client.get(url, headers=user.headers).get_json()
    assert listed['total'] == 2
