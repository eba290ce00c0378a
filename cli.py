import click
from flask.cli import with_appcontext
from models import (
    db, User, UserPreference, Project, ProjectMember, Tag, Task, Subtask,
    DailySchedule, TimeBlock, ScheduleItem, Notification
)
from extensions import bcrypt
from tags import increment_tag_usage
from scheduling import calculate_duration
from schedules import (
    get_schedule, create_daily_schedule, find_or_create_time_block, update_schedule_statistics
)
from datetime import date, datetime, timedelta

DEMO_EMAIL = 'demo@example.com'
DEMO_PASSWORD = 'demo-password'

# ============================================
# 管理指令 (flask init-db / seed-demo / show-db)
# ============================================

@click.command('init-db')
@click.option('--drop', is_flag=True, help='Drop all tables first')
@with_appcontext
def init_db_command(drop):
    """建立資料表"""
    if drop:
        db.drop_all()
        click.echo('Dropped all tables.')
    db.create_all()
    click.echo('Database initialized.')


@click.command('seed-demo')
@with_appcontext
def seed_demo_command():
    """
    建立展示用資料

    demo 使用者、一個專案、幾個標籤和任務, 以及今天的排程
    """
    if User.query.filter_by(email=DEMO_EMAIL).first():
        click.echo(f'Demo user {DEMO_EMAIL} already exists, skipping.')
        return

    user = User(
        email=DEMO_EMAIL,
        username='demo',
        display_name='Demo User',
        password_hash=bcrypt.generate_password_hash(DEMO_PASSWORD).decode('utf-8')
    )
    db.session.add(user)
    db.session.flush()
    db.session.add(UserPreference(user_id=user.id))

    project = Project(
        name='Website Redesign',
        description='Demo project',
        status='active',
        owner_id=user.id,
        created_by=user.id,
        updated_by=user.id
    )
    db.session.add(project)
    db.session.flush()
    db.session.add(ProjectMember(project_id=project.id, user_id=user.id, role='owner'))

    tags = {}
    for name, color in [('frontend', '#4ECDC4'), ('backend', '#45B7D1'), ('urgent', '#FF6B6B')]:
        tag = Tag.query.filter_by(name=name).first() or Tag(name=name, color=color)
        db.session.add(tag)
        tags[name] = tag
    db.session.flush()

    task_specs = [
        ('Design landing page', 'in_progress', 'high', 3.0, ['frontend']),
        ('Set up API endpoints', 'todo', 'medium', 5.0, ['backend']),
        ('Fix login bug', 'todo', 'urgent', 1.5, ['backend', 'urgent'])
    ]
    tasks = []
    for title, status, priority, hours, tag_names in task_specs:
        task = Task(
            title=title,
            status=status,
            priority=priority,
            estimated_hours=hours,
            project_id=project.id,
            assignee_id=user.id,
            created_by=user.id,
            updated_by=user.id,
            due_date=datetime.utcnow() + timedelta(days=3)
        )
        task.tags = [tags[n] for n in tag_names]
        increment_tag_usage(task.tags)
        db.session.add(task)
        # 同一個標籤的 usage_count 運算式要先寫入才能再加一次
        db.session.flush()
        tasks.append(task)

    db.session.add(Subtask(task_id=tasks[0].id, title='Wireframe'))
    db.session.add(Subtask(task_id=tasks[0].id, title='Color palette', completed=True))

    schedule = get_schedule(user.id, date.today()) or create_daily_schedule(user.id, date.today())
    item_specs = [
        ('task', tasks[0].title, '09:00', '11:00', tasks[0].id),
        ('meeting', 'Daily standup', '11:00', '11:30', None),
        ('break', 'Lunch', '12:00', '13:00', None),
        ('task', tasks[1].title, '13:00', '15:00', tasks[1].id)
    ]
    for item_type, title, start, end, task_id in item_specs:
        duration = calculate_duration(start, end)
        item = ScheduleItem(
            type=item_type,
            title=title,
            start_time=start,
            end_time=end,
            duration=duration,
            estimated_time=duration,
            task_id=task_id,
            created_by=user.id
        )
        item.time_block = find_or_create_time_block(schedule, start, end)
        schedule.items.append(item)
    update_schedule_statistics(schedule)

    db.session.add(Notification(
        user_id=user.id,
        type='system',
        title='Welcome',
        message='Your demo workspace is ready'
    ))

    db.session.commit()
    click.echo(f'Demo data created. Login with {DEMO_EMAIL} / {DEMO_PASSWORD}')


@click.command('show-db')
@with_appcontext
def show_db_command():
    """印出資料庫內容"""
    click.echo('\n' + '=' * 60)
    click.echo('資料庫內容')
    click.echo('=' * 60)

    users = User.query.all()
    click.echo(f'\n【使用者】共 {len(users)} 筆:')
    for u in users:
        click.echo(f'  ID: {u.id}, Email: {u.email}, Username: {u.username}, Status: {u.status}')

    projects = Project.query.all()
    click.echo(f'\n【專案】共 {len(projects)} 筆:')
    for p in projects:
        click.echo(f'  ID: {p.id}, Name: {p.name}, Owner: {p.owner.username}, Status: {p.status}')

    members = ProjectMember.query.all()
    click.echo(f'\n【專案成員】共 {len(members)} 筆:')
    for m in members:
        click.echo(f'  Project: {m.project.name}, User: {m.user.username}, Role: {m.role}')

    tasks = Task.query.all()
    click.echo(f'\n【任務】共 {len(tasks)} 筆:')
    for t in tasks:
        tag_names = ', '.join(tag.name for tag in t.tags) or '-'
        click.echo(f'  ID: {t.id}, Title: {t.title}, Status: {t.status}, Tags: {tag_names}')

    tags = Tag.query.order_by(Tag.usage_count.desc()).all()
    click.echo(f'\n【標籤】共 {len(tags)} 筆:')
    for tag in tags:
        click.echo(f'  ID: {tag.id}, Name: {tag.name}, Usage: {tag.usage_count}')

    schedules = DailySchedule.query.order_by(DailySchedule.date.asc()).all()
    click.echo(f'\n【排程】共 {len(schedules)} 筆:')
    for s in schedules:
        click.echo(
            f'  {s.date.isoformat()} (user {s.user_id}) '
            f'{s.working_hours_start}-{s.working_hours_end}, '
            f'blocks: {len(s.time_blocks)}, items: {len(s.items)}, utilization: {s.utilization:.0%}'
        )
        for item in s.items:
            click.echo(f'    {item.start_time}-{item.end_time} [{item.type}] {item.title} ({item.status})')

    click.echo(f'\n【通知】共 {Notification.query.count()} 筆')
    click.echo(f'【Time blocks】共 {TimeBlock.query.count()} 筆')
    click.echo('\n' + '=' * 60)


def register_commands(app):
    app.cli.add_command(init_db_command)
    app.cli.add_command(seed_demo_command)
    app.cli.add_command(show_db_command)
