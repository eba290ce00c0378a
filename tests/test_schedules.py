from __future__ import annotations

import pytest

from models import ScheduleItem, db

DAY = '2024-05-06'


@pytest.fixture
def schedule(client, user):
    resp = client.get(f'/schedules/daily/{DAY}', headers=user.headers)
    assert resp.status_code == 200
    return resp.get_json()


@pytest.fixture
def add_item(client, user, schedule):
    def _add_item(start, end, headers=None, **fields):
        payload = {
            'daily_schedule_id': schedule['id'],
            'type': 'task',
            'title': f'Work {start}',
            'start_time': start,
            'end_time': end
        }
        payload.update(fields)
        return client.post('/schedules/items', json=payload, headers=headers or user.headers)

    return _add_item


# ── daily schedules ──────────────────────────────────────────────────────────


def test_get_daily_creates_schedule_with_default_grid(schedule):
    assert schedule['date'] == DAY
    assert schedule['working_hours_start'] == '09:00'
    assert schedule['working_hours_end'] == '18:00'
    assert len(schedule['time_blocks']) == 16
    assert schedule['items'] == []


def test_get_daily_is_idempotent(client, user, schedule):
    again = client.get(f'/schedules/daily/{DAY}', headers=user.headers).get_json()
    assert again['id'] == schedule['id']


def test_invalid_date_is_rejected(client, user):
    resp = client.get('/schedules/daily/2024-13-01', headers=user.headers)
    assert resp.status_code == 400
    assert resp.get_json()['error'] == 'INVALID_DATE'


def test_create_schedule_conflicts_with_existing(client, user, schedule):
    resp = client.post('/schedules/daily', json={'date': DAY}, headers=user.headers)
    assert resp.status_code == 409

    resp = client.post('/schedules/daily', json={
        'date': '2024-05-07',
        'working_hours_start': '8:00',
        'working_hours_end': '17:00'
    }, headers=user.headers)
    assert resp.status_code == 201
    assert resp.get_json()['schedule']['working_hours_start'] == '08:00'


@pytest.mark.parametrize('hours', [
    {'working_hours_start': '18:00', 'working_hours_end': '09:00'},
    {'working_hours_start': '09:00', 'working_hours_end': '12:00'},
    {'working_hours_start': '05:00', 'working_hours_end': '22:00'}
])
def test_update_schedule_rejects_bad_working_hours(client, user, schedule, hours):
    resp = client.patch(f'/schedules/daily/{DAY}', json=hours, headers=user.headers)
    assert resp.status_code == 400
    assert resp.get_json()['error'] == 'INVALID_WORKING_HOURS'


def test_update_schedule_checks_merged_values(client, user, schedule):
    resp = client.patch(f'/schedules/daily/{DAY}', json={'working_hours_end': '20:00'}, headers=user.headers)
    assert resp.status_code == 200
    body = resp.get_json()['schedule']
    assert body['working_hours_start'] == '09:00'
    assert body['working_hours_end'] == '20:00'


def test_range_creates_missing_days_in_order(client, user, schedule):
    resp = client.get('/schedules/range?start_date=2024-05-05&end_date=2024-05-08', headers=user.headers)
    assert resp.status_code == 200
    dates = [s['date'] for s in resp.get_json()['schedules']]
    assert dates == ['2024-05-05', '2024-05-06', '2024-05-07', '2024-05-08']


def test_range_limited_to_31_days(client, user):
    resp = client.get('/schedules/range?start_date=2024-01-01&end_date=2024-02-01', headers=user.headers)
    assert resp.status_code == 400

    resp = client.get('/schedules/range?start_date=2024-01-01&end_date=2024-01-31', headers=user.headers)
    assert resp.status_code == 200
    assert len(resp.get_json()['schedules']) == 31


# ── items ────────────────────────────────────────────────────────────────────


def test_create_item_attaches_to_covering_block(client, user, add_item):
    resp = add_item('9:15', '09:45', estimated_time=30)
    assert resp.status_code == 201
    item = resp.get_json()['item']
    assert item['start_time'] == '09:15'
    assert item['duration'] == 30

    schedule = client.get(f'/schedules/daily/{DAY}', headers=user.headers).get_json()
    block = next(b for b in schedule['time_blocks'] if b['id'] == item['time_block_id'])
    assert block['start_time'] == '09:00' and block['end_time'] == '10:00'
    assert schedule['total_estimated'] == 30
    assert schedule['utilization'] == round(30 / 540, 4)


def test_create_item_spanning_blocks_gets_own_block(client, user, add_item):
    item = add_item('09:30', '11:00').get_json()['item']

    schedule = client.get(f'/schedules/daily/{DAY}', headers=user.headers).get_json()
    assert len(schedule['time_blocks']) == 17
    block = next(b for b in schedule['time_blocks'] if b['id'] == item['time_block_id'])
    assert (block['start_time'], block['end_time'], block['duration']) == ('09:30', '11:00', 90)


def test_create_item_validation(add_item):
    resp = add_item('10:00', '09:00')
    assert resp.status_code == 400
    assert 'end_time' in resp.get_json()['details']

    resp = add_item('09:00', '10:00', estimated_time=120)
    assert resp.status_code == 400
    assert 'estimated_time' in resp.get_json()['details']

    resp = add_item('09:00', '10:00', estimated_time=30, actual_time=90)
    assert resp.status_code == 400
    assert 'actual_time' in resp.get_json()['details']

    resp = add_item('09:00', '10:00', color='blue')
    assert resp.status_code == 400


def test_create_item_overlap_returns_409(add_item):
    assert add_item('09:00', '10:00', title='Standup').status_code == 201
    assert add_item('10:00', '11:00').status_code == 201

    resp = add_item('09:30', '10:30')
    assert resp.status_code == 409
    body = resp.get_json()
    assert body['error'] == 'SCHEDULE_CONFLICT'
    assert '"Standup"' in body['message']
    assert len(body['details']['conflicts']) == 2


def test_create_item_on_someone_elses_schedule(add_item, other_user):
    resp = add_item('09:00', '10:00', headers=other_user.headers)
    assert resp.status_code == 403


def test_create_item_with_missing_task(add_item):
    resp = add_item('09:00', '10:00', task_id=9999)
    assert resp.status_code == 404


def test_update_item_moves_time_and_rechecks_overlap(client, user, add_item):
    first = add_item('09:00', '10:00').get_json()['item']
    add_item('11:00', '12:00')

    resp = client.patch(f'/schedules/items/{first["id"]}', json={'end_time': '11:30'}, headers=user.headers)
    assert resp.status_code == 409

    resp = client.patch(f'/schedules/items/{first["id"]}', json={
        'start_time': '09:30', 'end_time': '11:00'
    }, headers=user.headers)
    assert resp.status_code == 200
    item = resp.get_json()['item']
    assert item['duration'] == 90
    assert item['time_block_id'] != first['time_block_id']


def test_update_item_requires_a_field(client, user, add_item):
    item = add_item('09:00', '10:00').get_json()['item']
    resp = client.patch(f'/schedules/items/{item["id"]}', json={'unknown': 1}, headers=user.headers)
    assert resp.status_code == 400


def test_locked_item_cannot_move_or_be_deleted(client, user, add_item):
    item = add_item('09:00', '10:00', is_locked=True).get_json()['item']

    resp = client.patch(f'/schedules/items/{item["id"]}', json={'start_time': '08:00'}, headers=user.headers)
    assert resp.status_code == 422

    resp = client.patch(f'/schedules/items/{item["id"]}', json={'status': 'in_progress'}, headers=user.headers)
    assert resp.status_code == 200

    resp = client.delete(f'/schedules/items/{item["id"]}', headers=user.headers)
    assert resp.status_code == 422


def test_delete_item_updates_totals(client, user, add_item):
    item = add_item('09:00', '10:00', estimated_time=60).get_json()['item']

    resp = client.delete(f'/schedules/items/{item["id"]}', headers=user.headers)
    assert resp.status_code == 200
    assert db.session.get(ScheduleItem, item['id']) is None

    schedule = client.get(f'/schedules/daily/{DAY}', headers=user.headers).get_json()
    assert schedule['items'] == []
    assert schedule['total_estimated'] == 0


def test_bulk_update(client, user, other_user, add_item):
    ids = [add_item(f'{h:02d}:00', f'{h:02d}:30').get_json()['item']['id'] for h in (9, 10, 11)]

    resp = client.patch('/schedules/items/bulk', json={
        'item_ids': ids, 'status': 'completed', 'completion_rate': 1
    }, headers=user.headers)
    assert resp.status_code == 200
    assert resp.get_json()['updated'] == 3
    assert {i['status'] for i in resp.get_json()['items']} == {'completed'}

    resp = client.patch('/schedules/items/bulk', json={'item_ids': ids + [9999], 'status': 'planned'},
                        headers=user.headers)
    assert resp.status_code == 404

    resp = client.patch('/schedules/items/bulk', json={'item_ids': ids, 'status': 'planned'},
                        headers=other_user.headers)
    assert resp.status_code == 403

    resp = client.patch('/schedules/items/bulk', json={'item_ids': list(range(1, 52)), 'status': 'planned'},
                        headers=user.headers)
    assert resp.status_code == 400

    resp = client.patch('/schedules/items/bulk', json={'item_ids': ids}, headers=user.headers)
    assert resp.status_code == 400


# ── statistics / conflicts ───────────────────────────────────────────────────


def test_statistics_for_day(client, user, add_item):
    add_item('09:00', '11:00', status='completed')
    add_item('12:00', '13:00', type='break', title='Lunch')

    resp = client.get(f'/schedules/statistics/{DAY}', headers=user.headers)
    assert resp.status_code == 200
    stats = resp.get_json()['statistics']
    assert stats['total_tasks'] == 1
    assert stats['completed_tasks'] == 1
    assert stats['break_hours'] == 1.0
    assert stats['working_hours'] == 9.0


def test_statistics_for_unscheduled_day(client, user):
    resp = client.get('/schedules/statistics/2030-01-01', headers=user.headers)
    assert resp.status_code == 200
    assert resp.get_json()['statistics']['total_tasks'] == 0


def test_conflicts_reports_overdue_tasks(client, user, add_item, create_task):
    task = create_task(due_date='2024-05-01T17:00:00')
    add_item('09:00', '10:00', task_id=task['id'])

    resp = client.get(f'/schedules/conflicts/{DAY}', headers=user.headers)
    assert resp.status_code == 200
    conflicts = resp.get_json()['conflicts']
    assert [c['type'] for c in conflicts] == ['deadline']


# ── task scheduling ──────────────────────────────────────────────────────────


def test_schedule_task_creates_task_item(client, user, create_task):
    task = create_task(title='Write docs', priority='high', estimated_hours=1.5)

    resp = client.post(f'/schedules/tasks/{task["id"]}/schedule', json={
        'date': DAY, 'start_time': '13:00', 'end_time': '14:30'
    }, headers=user.headers)
    assert resp.status_code == 201
    item = resp.get_json()['item']
    assert item['type'] == 'task'
    assert item['title'] == 'Write docs'
    assert item['priority'] == 'high'
    assert item['estimated_time'] == 90
    assert item['task']['id'] == task['id']


def test_schedule_child_task_as_subtask(client, user, create_task):
    parent = create_task(title='Release')
    child = create_task(title='Tag release', parent_id=parent['id'])

    resp = client.post(f'/schedules/tasks/{child["id"]}/schedule', json={
        'date': DAY, 'start_time': '09:00', 'end_time': '10:00'
    }, headers=user.headers)
    assert resp.status_code == 201
    assert resp.get_json()['item']['type'] == 'subtask'


def test_schedule_missing_task(client, user):
    resp = client.post('/schedules/tasks/9999/schedule', json={
        'date': DAY, 'start_time': '09:00', 'end_time': '10:00'
    }, headers=user.headers)
    assert resp.status_code == 404


def test_suggestions_skip_busy_time(client, user, add_item, create_task):
    task = create_task(estimated_hours=2)
    add_item('09:00', '17:00')

    resp = client.get(f'/schedules/suggestions/{task["id"]}?date={DAY}&days=2', headers=user.headers)
    assert resp.status_code == 200
    body = resp.get_json()
    assert body['duration'] == 120

    suggestions = {s['date']: s['slots'] for s in body['suggestions']}
    assert DAY not in suggestions
    assert suggestions['2024-05-07'][0]['start_time'] == '09:00'


def test_suggested_slot_can_be_scheduled(client, user, add_item, create_task):
    task = create_task(estimated_hours=1)
    assert add_item('09:00', '10:00', status='cancelled').status_code == 201

    resp = client.get(f'/schedules/suggestions/{task["id"]}?date={DAY}&days=1', headers=user.headers)
    slot = resp.get_json()['suggestions'][0]['slots'][0]
    assert slot['start_time'] == '10:00'

    resp = client.post(f'/schedules/tasks/{task["id"]}/schedule', json={
        'date': DAY, 'start_time': slot['start_time'], 'end_time': slot['end_time']
    }, headers=user.headers)
    assert resp.status_code == 201


def test_schedules_require_auth(client):
    assert client.get(f'/schedules/daily/{DAY}').status_code == 401
