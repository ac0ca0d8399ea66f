"""
Command Line Interface for devtrack.
"""

import click
import yaml
from pathlib import Path
from .version import VERSION
from .config import DEFAULT_DATA_DIR
from .data import DataCore
from .models import TaskStatus
from .recovery import DevTrackError


def _tasks(ctx):
    """Load the task repository for the data directory chosen on the command line."""
    DataCore.reset()
    return DataCore.load_context(ctx.obj['data_dir']).tasks


def _fail(ctx, error):
    click.echo(f"❌ {error}", err=True)
    ctx.exit(1)


def _format_task(task):
    state = task.get('progress_state') or 'not_started'
    percentage = task.get('progress_percentage')
    progress = f"{state} {percentage:g}%" if isinstance(percentage, (int, float)) else state
    return f"{task.get('id')} [{task.get('status')}] ({progress}) P{task.get('priority')} {task.get('title')}"


def _parse_dependency(value):
    task_id, _, dep_type = value.partition(':')
    return {"task_id": task_id, "type": dep_type or "weak"}


@click.group()
@click.version_option(version=VERSION, prog_name="devtrack")
@click.option('--data-dir', envvar='DEVTRACK_DATA_DIR', default=str(DEFAULT_DATA_DIR),
              show_default=True, type=click.Path(file_okay=False), help='Directory holding the tracker data')
@click.pass_context
def main(ctx, data_dir):
    """
    devtrack - track tasks, dependencies and progress for a local project.
    """
    ctx.ensure_object(dict)
    ctx.obj['data_dir'] = Path(data_dir)


@main.command()
@click.option('--format', 'file_format', type=click.Choice(['json', 'yaml']), default='json',
              help='Serialization used for data files')
@click.pass_context
def init(ctx, file_format):
    """Initialize a devtrack data directory."""
    data_dir = ctx.obj['data_dir']
    if DataCore.is_initialized(data_dir):
        click.echo(f"❌ Already initialized ({data_dir} exists)")
        return

    try:
        DataCore.initialize(data_dir, file_format)
        _tasks(ctx)
    except DevTrackError as e:
        _fail(ctx, f"Error initializing: {e}")

    click.echo(f"🚀 Initialized devtrack in {data_dir} ({file_format})")


@main.command()
@click.pass_context
def status(ctx):
    """Show task counts and the current focus."""
    try:
        repo = _tasks(ctx)
        tasks = repo.get_all()[repo.collection_key]
        focus = repo.get_current_focus()
    except DevTrackError as e:
        _fail(ctx, e)

    click.echo(f"🔧 devtrack {VERSION}")
    click.echo(f"📍 Data: {ctx.obj['data_dir']}")
    click.echo(f"📋 Tasks: {len(tasks)}")
    for task_status in TaskStatus:
        count = sum(1 for t in tasks if t.get('status') == task_status.value)
        if count:
            click.echo(f"   {task_status.value}: {count}")
    click.echo(f"🎯 Focus: {focus or '-'}")


@main.group()
def task():
    """Manage tasks."""
    pass


@task.command('add')
@click.argument('task_id')
@click.option('--title', required=True)
@click.option('--description', required=True)
@click.option('--priority', type=int, default=3, show_default=True)
@click.option('--status', 'task_status', type=click.Choice([s.value for s in TaskStatus]), default='pending')
@click.option('--hours', type=float, help='Estimated hours')
@click.option('--depends', multiple=True, help='Dependency as ID or ID:strong / ID:weak')
@click.pass_context
def add(ctx, task_id, title, description, priority, task_status, hours, depends):
    """Create a task."""
    data = {
        "id": task_id,
        "title": title,
        "description": description,
        "priority": priority,
        "status": task_status,
        "dependencies": [_parse_dependency(d) for d in depends],
        "git_commits": [],
    }
    if hours is not None:
        data["estimated_hours"] = hours

    try:
        created = _tasks(ctx).create(data)
    except DevTrackError as e:
        _fail(ctx, e)
    click.echo(f"✅ Created {_format_task(created)}")


@task.command('list')
@click.option('--status', 'task_status', help='Only tasks with this status')
@click.option('--state', help='Only tasks in this progress state')
@click.pass_context
def list_tasks(ctx, task_status, state):
    """List tasks."""
    try:
        repo = _tasks(ctx)
        if task_status:
            tasks = repo.get_tasks_by_status(task_status)
        elif state:
            tasks = repo.get_tasks_by_progress_state(state)
        else:
            tasks = repo.get_all()[repo.collection_key]
    except DevTrackError as e:
        _fail(ctx, e)

    if not tasks:
        click.echo("📭 No tasks found")
        return
    for t in tasks:
        click.echo(_format_task(t))


@task.command('show')
@click.argument('task_id')
@click.pass_context
def show(ctx, task_id):
    """Show one task."""
    try:
        found = _tasks(ctx).get_by_id(task_id)
    except DevTrackError as e:
        _fail(ctx, e)
    if found is None:
        _fail(ctx, f"Task {task_id} not found")
    click.echo(yaml.safe_dump(found, sort_keys=False, allow_unicode=True).rstrip())


@task.command('update')
@click.argument('task_id')
@click.option('--title')
@click.option('--description')
@click.option('--priority', type=int)
@click.option('--status', 'task_status', type=click.Choice([s.value for s in TaskStatus]))
@click.option('--hours', type=float, help='Estimated hours')
@click.pass_context
def update(ctx, task_id, title, description, priority, task_status, hours):
    """Update fields of a task."""
    patch = {key: value for key, value in {
        "title": title,
        "description": description,
        "priority": priority,
        "status": task_status,
        "estimated_hours": hours,
    }.items() if value is not None}
    if not patch:
        click.echo("💡 Nothing to update")
        return

    try:
        updated = _tasks(ctx).update(task_id, patch)
    except DevTrackError as e:
        _fail(ctx, e)
    click.echo(f"✅ Updated {_format_task(updated)}")


@task.command('delete')
@click.argument('task_ids', nargs=-1, required=True)
@click.pass_context
def delete(ctx, task_ids):
    """Archive and delete one or more tasks."""
    try:
        results = _tasks(ctx).delete_many(list(task_ids))
    except DevTrackError as e:
        _fail(ctx, e)

    failed = False
    for result in results:
        if result['success']:
            click.echo(f"🗑️  Deleted {result['id']}")
        else:
            failed = True
            click.echo(f"❌ {result['id']}: {result['error']}", err=True)
    if failed:
        ctx.exit(1)


@task.command('progress')
@click.argument('task_id')
@click.argument('state')
@click.option('--percentage', type=float, help='Override the default percentage of the state')
@click.pass_context
def progress(ctx, task_id, state, percentage):
    """Move a task to another progress state."""
    try:
        updated = _tasks(ctx).update_task_progress(task_id, state, percentage)
    except DevTrackError as e:
        _fail(ctx, e)
    click.echo(f"✅ {_format_task(updated)}")


@task.command('check')
@click.argument('task_id')
@click.pass_context
def check(ctx, task_id):
    """Check the dependencies of a task."""
    try:
        verdict = _tasks(ctx).check_dependencies(task_id)
    except DevTrackError as e:
        _fail(ctx, e)

    if verdict.is_valid:
        click.echo(f"✅ Dependencies of {task_id} are satisfied")
        return
    for error in verdict.errors:
        click.echo(f"   ⚠️  {error}")
    ctx.exit(1)


@task.command('commit')
@click.argument('task_id')
@click.argument('commit_hash')
@click.pass_context
def commit(ctx, task_id, commit_hash):
    """Link a commit to a task."""
    try:
        updated = _tasks(ctx).associate_commit_with_task(task_id, commit_hash)
    except DevTrackError as e:
        _fail(ctx, e)
    click.echo(f"🔗 {task_id}: {len(updated.get('git_commits') or [])} commit(s) linked")


@task.command('focus')
@click.argument('task_id', required=False)
@click.pass_context
def focus(ctx, task_id):
    """Show or set the task currently in focus."""
    try:
        repo = _tasks(ctx)
        if task_id:
            repo.set_current_focus(task_id)
        current = repo.get_current_focus()
    except DevTrackError as e:
        _fail(ctx, e)
    click.echo(f"🎯 Focus: {current or '-'}")


@task.command('history')
@click.argument('task_id')
@click.pass_context
def history(ctx, task_id):
    """List archived versions of a task."""
    try:
        snapshots = _tasks(ctx).get_history(task_id)
    except DevTrackError as e:
        _fail(ctx, e)

    if not snapshots:
        click.echo(f"📭 No history for {task_id}")
        return
    for name in snapshots:
        click.echo(f"🗂️  {name}")


@main.group()
def hierarchy():
    """Manage the epic/story hierarchy."""
    pass


@hierarchy.command('show')
@click.pass_context
def show_hierarchy(ctx):
    """Print the stored hierarchy."""
    try:
        doc = _tasks(ctx).get_task_hierarchy()
    except DevTrackError as e:
        _fail(ctx, e)
    click.echo(yaml.safe_dump(doc, sort_keys=False, allow_unicode=True).rstrip())


@hierarchy.command('set')
@click.argument('hierarchy_file', type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def set_hierarchy(ctx, hierarchy_file):
    """Replace the hierarchy with the contents of a YAML or JSON file."""
    try:
        doc = yaml.safe_load(Path(hierarchy_file).read_text(encoding='utf-8'))
    except yaml.YAMLError as e:
        _fail(ctx, f"Cannot parse {hierarchy_file}: {e}")

    try:
        _tasks(ctx).update_task_hierarchy(doc)
    except DevTrackError as e:
        _fail(ctx, e)
    click.echo(f"✅ Hierarchy updated: {len(doc.get('epics', []))} epic(s), {len(doc.get('stories', []))} stor(ies)")


def _feedback(ctx):
    DataCore.reset()
    return DataCore.load_context(ctx.obj['data_dir']).feedback


def _format_feedback(repo, feedback):
    loop = feedback.get('feedback_loop') or {}
    kind = loop.get('feedback_type') or '-'
    return (f"{feedback.get('id')} [{loop.get('status')}] {loop.get('task_id')} "
            f"attempt {loop.get('implementation_attempt') or 1} P{repo.calculate_priority(feedback)} ({kind})")


@main.group()
def feedback():
    """Manage test and review feedback."""
    pass


@feedback.command('save')
@click.argument('feedback_file', type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def save_feedback(ctx, feedback_file):
    """Add or replace pending feedback from a YAML or JSON file."""
    try:
        doc = yaml.safe_load(Path(feedback_file).read_text(encoding='utf-8'))
    except yaml.YAMLError as e:
        _fail(ctx, f"Cannot parse {feedback_file}: {e}")

    try:
        repo = _feedback(ctx)
        saved = repo.save_feedback(doc)
    except DevTrackError as e:
        _fail(ctx, e)
    click.echo(f"✅ Saved {_format_feedback(repo, saved)}")


@feedback.command('list')
@click.option('--task', 'task_id', help='Only feedback for this task')
@click.option('--status', 'status_filter', help='Only feedback with this status')
@click.option('--type', 'feedback_type', help='Only feedback of this type')
@click.option('--text', help='Case-insensitive text search')
@click.pass_context
def list_feedback(ctx, task_id, status_filter, feedback_type, text):
    """List pending and archived feedback."""
    try:
        repo = _feedback(ctx)
        found = repo.search_feedback(task_id=task_id, status=status_filter,
                                     feedback_type=feedback_type, text=text)
    except DevTrackError as e:
        _fail(ctx, e)

    if not found:
        click.echo("📭 No feedback found")
        return
    for item in found:
        click.echo(_format_feedback(repo, item))


@feedback.command('status')
@click.argument('feedback_id')
@click.argument('new_status')
@click.option('--note', help='Resolution note')
@click.pass_context
def feedback_status(ctx, feedback_id, new_status, note):
    """Move feedback to another status."""
    details = {"note": note} if note else {}
    try:
        repo = _feedback(ctx)
        updated = repo.update_feedback_status(feedback_id, new_status, details)
    except DevTrackError as e:
        _fail(ctx, e)
    click.echo(f"✅ {_format_feedback(repo, updated)}")


@feedback.command('archive')
@click.argument('feedback_id')
@click.pass_context
def archive_feedback(ctx, feedback_id):
    """Move feedback to the history directory."""
    try:
        filename = _feedback(ctx).move_feedback_to_history(feedback_id)
    except DevTrackError as e:
        _fail(ctx, e)
    click.echo(f"🗂️  {feedback_id} -> {filename}")


@feedback.command('stats')
@click.pass_context
def feedback_stats(ctx):
    """Show feedback counts."""
    try:
        stats = _feedback(ctx).get_feedback_stats()
    except DevTrackError as e:
        _fail(ctx, e)

    click.echo(f"💬 Feedback: {stats['total']} ({stats['pending']} pending, {stats['history']} archived)")
    for name, count in stats['status_counts'].items():
        if count:
            click.echo(f"   {name}: {count}")
    for task_id, count in sorted(stats['task_counts'].items()):
        click.echo(f"   {task_id}: {count}")


if __name__ == "__main__":
    main()
