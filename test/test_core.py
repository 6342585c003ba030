import threading
from pathlib import Path

import pytest

from sprat.core import Context, Task, TaskUnavailableException, parallel, sequential
from sprat.dependencies import PipDependency
from sprat.paths import glob
from sprat.test_harness import make_settings, write_files


class RecordingTask(Task):
    def __init__(self, name: str, log: list[str], error: Exception | None = None):
        self.name = name
        self.log = log
        self.error = error

    def __call__(self):
        self.log.append(self.name)
        if self.error:
            raise self.error


class BarrierTask(Task):
    def __init__(self, name: str, barrier: threading.Barrier):
        self.name = name
        self.barrier = barrier

    def __call__(self):
        self.barrier.wait()


class MissingDependencyTask(Task):
    name = 'missing'

    def get_dependencies(self):
        return {PipDependency('sprat-no-such-package', check_name='sprat_no_such_package')}

    def __call__(self):
        pass


@pytest.fixture
def context(tmp_path: Path):
    return Context(make_settings(tmp_path / 'src', tmp_path))


def test_sequential_runs_in_order(context: Context):
    log: list[str] = []
    pipeline = sequential(*(RecordingTask(n, log) for n in 'abc'), name='series')
    context.bind(pipeline)
    pipeline()
    assert log == ['a', 'b', 'c']


def test_sequential_stops_at_first_failure(context: Context):
    log: list[str] = []
    pipeline = sequential(
        RecordingTask('a', log),
        RecordingTask('b', log, ValueError('broken')),
        RecordingTask('c', log),
    )
    context.bind(pipeline)
    with pytest.raises(ValueError, match='broken'):
        pipeline()
    assert log == ['a', 'b']


def test_sequential_default_name():
    log: list[str] = []
    assert sequential(RecordingTask('a', log), RecordingTask('b', log)).name == 'series(a, b)'
    assert parallel(RecordingTask('a', log), RecordingTask('b', log)).name == 'parallel(a, b)'


def test_sequential_cancel_skips_remaining_steps(context: Context):
    log: list[str] = []

    class CancellingTask(Task):
        name = 'cancel'

        def __call__(self):
            log.append(self.name)
            pipeline.cancel()

    pipeline = sequential(CancellingTask(), RecordingTask('after', log))
    context.bind(pipeline)
    pipeline()
    assert log == ['cancel']

    # A cancelled pipeline can run again.
    pipeline.tasks = pipeline.tasks[1:]
    pipeline()
    assert log == ['cancel', 'after']


def test_parallel_runs_concurrently(context: Context):
    barrier = threading.Barrier(3, timeout=5)
    pipeline = parallel(*(BarrierTask(n, barrier) for n in 'abc'))
    context.bind(pipeline)
    pipeline()
    assert not barrier.broken


def test_parallel_failure_lets_others_finish(context: Context):
    log: list[str] = []
    pipeline = parallel(
        RecordingTask('a', log, ValueError('first')),
        RecordingTask('b', log),
        RecordingTask('c', log, KeyError('second')),
    )
    context.bind(pipeline)
    with pytest.raises(ValueError, match='first'):
        pipeline()
    assert sorted(log) == ['a', 'b', 'c']


def test_parallel_empty(context: Context):
    pipeline = parallel()
    context.bind(pipeline)
    pipeline()


def test_composite_iter_tasks():
    log: list[str] = []
    a, b, c = (RecordingTask(n, log) for n in 'abc')
    inner = parallel(b, c, name='inner')
    outer = sequential(a, inner, name='outer')
    assert list(outer.iter_tasks()) == [outer, a, inner, b, c]


def test_bind_unavailable_task(context: Context):
    task = MissingDependencyTask()
    with pytest.raises(TaskUnavailableException) as info:
        context.bind(sequential(task))
    assert info.value.task is task


def test_run_unknown_task(context: Context):
    with pytest.raises(KeyError, match='nothing'):
        context.run('nothing')


def test_context_find(tmp_path: Path):
    source = tmp_path / 'src'
    write_files(source, {
        'js/main.js': '',
        'js/app.min.js': '',
        'js/lib/util.js': '',
        'js/.hidden.js': '',
        'index.html': '',
    })
    context = Context(make_settings(source, tmp_path))
    found = context.find(glob('js/*.js', '!js/*.min.js'))
    assert found == [source / 'js/main.js']


def test_context_find_missing_dir(tmp_path: Path):
    context = Context(make_settings(tmp_path / 'missing', tmp_path))
    assert context.find(glob('**/*')) == []
