"""
Core classes and types for the sprat task pipeline.
"""
from __future__ import annotations

import abc
import shutil
import threading
import time
import typing as t
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from pathlib import Path

from .pretty_utils import print_with_style
from .reload import LiveReloadServer, ReloadKind

if t.TYPE_CHECKING:
    from collections.abc import Iterable, Iterator, Set
    from .dependencies import Dependency
    from .deploy import DeploySettings
    from .scripts import Provide
    from .styles import Preprocessor


T = t.TypeVar('T')
T2 = t.TypeVar('T2')
ContextDir = t.Literal['source_dir', 'output_dir']


class InputProjectSettings(t.TypedDict, total=False):
    """
    TypedDict for defining project settings in a sprat config file.
    """
    source_dir: Path
    output_dir: Path
    preprocessor: Preprocessor | str
    watch_extensions: str | t.Sequence[str]
    image_cache: Path | None
    provide: dict[str, Provide]
    deploy: DeploySettings
    host: str
    port: int
    live_port: int
    poll_interval: float


class ProjectSettings(t.TypedDict):
    """
    TypedDict for fully resolved project settings, ready for building tasks
    and a Context.
    """
    source_dir: Path
    output_dir: Path
    preprocessor: Preprocessor
    watch_extensions: tuple[str, ...]
    image_cache: Path | None
    provide: dict[str, Provide]
    deploy: DeploySettings
    host: str
    port: int
    live_port: int
    poll_interval: float


def _rm_children(path: Path):
    if not path.exists():
        return
    for child in path.iterdir():
        if child.is_dir() and not child.is_symlink():
            shutil.rmtree(child)
        else:
            child.unlink()


def _format_elapsed(seconds: float):
    if seconds < 1:
        return f'{seconds * 1000:.0f} ms'
    return f'{seconds:.2f} s'


class Context:
    """
    The settings, named tasks, and live-reload server shared by one sprat
    project.
    """
    def __init__(self,
                 settings: ProjectSettings,
                 tasks: dict[str, Task] | None = None,
                 reloader: LiveReloadServer | None = None):
        self.settings = settings
        self.reloader = reloader or LiveReloadServer()
        self.tasks: dict[str, Task] = dict(tasks or {})

    @t.overload
    def __getitem__(self, key: ContextDir) -> Path: ...
    @t.overload
    def __getitem__(self, key: str) -> t.Any: ...
    def __getitem__(self, key):
        return self.settings[key]

    def bind(self, task: Task | None):
        """
        Bind a Task to this Context, checking to ensure its availability.
        """
        if task:
            if not task.is_available():
                raise TaskUnavailableException(task)
            task.bind(self)

    def notify(self, kind: ReloadKind):
        """
        Push a live-reload event to any connected browsers.
        """
        self.reloader.notify(kind)

    def find_inputs(self, path: Path) -> Iterator[Path]:
        """
        Recursively yield every file below @path. A missing directory yields
        nothing.
        """
        if not path.is_dir():
            return
        for candidate in path.iterdir():
            if candidate.is_dir():
                yield from self.find_inputs(candidate)
            else:
                yield candidate

    def find(self, matcher: Matcher[t.Any], parent_dir: ContextDir = 'source_dir') -> list[Path]:
        """
        Return the sorted files below the @parent_dir directory accepted by
        @matcher.
        """
        return sorted(p for p in self.find_inputs(self[parent_dir]) if matcher(self, p))

    def run(self, name: str = 'default'):
        """
        Bind the task registered as @name, and everything it composes, then
        run it.
        """
        try:
            task = self.tasks[name]
        except KeyError as e:
            raise KeyError(f'Unknown task {name!r}!') from e
        self.bind(task)
        run_logged(task)


class Matcher(t.Generic[T], abc.ABC):
    """
    Abstract base class for Path Matchers. Provides pre-baked ability to
    combine Matchers with |, & and ~.
    """
    @abc.abstractmethod
    def __call__(self, context: Context, path: Path) -> T:
        ...

    def __or__(self, other: Matcher[T2]):
        return _OrMatcher(self, other)

    def __and__(self, other: Matcher[T2]):
        return _AndMatcher(self, other)

    def __invert__(self):
        return _NotMatcher(self)


class _OrMatcher(Matcher[T | T2]):
    def __init__(self, left: Matcher[T], right: Matcher[T2]):
        self.left = left
        self.right = right

    def __call__(self, context: Context, path: Path):
        return self.left(context, path) or self.right(context, path)


class _AndMatcher(Matcher[T | T2]):
    def __init__(self, left: Matcher[T], right: Matcher[T2]):
        self.left = left
        self.right = right

    def __call__(self, context: Context, path: Path):
        return self.left(context, path) and self.right(context, path)


class _NotMatcher(Matcher[bool]):
    def __init__(self, inner: Matcher[t.Any]):
        self.inner = inner

    def __call__(self, context: Context, path: Path):
        return not self.inner(context, path)


class Task(abc.ABC):
    """
    Abstract base class for Tasks, the named build steps composed into sprat
    pipelines. Calling a Task runs it to completion or raises.
    """
    name = 'task'
    context: Context

    def __repr__(self):
        return f'<{self.__class__.__name__} {self.name!r}>'

    def get_dependencies(self) -> Set[Dependency]:
        """
        Return the requirements for this Task.
        """
        return set()

    def is_available(self) -> bool:
        """
        Return whether this Task's requirements are installed, making it
        available for use.
        """
        return all(d.satisfied for d in self.get_dependencies())

    def bind(self, context: Context):
        """
        Bind this Task to a Context.
        """
        self.context = context

    def cancel(self):
        """
        Ask a running Task to finish early. Leaf tasks run to completion, so
        the default does nothing.
        """

    def iter_tasks(self) -> Iterator[Task]:
        """
        Yield this Task and every Task it composes.
        """
        yield self

    @abc.abstractmethod
    def __call__(self) -> None:
        ...


def run_logged(task: Task):
    """
    Run @task, reporting when it starts and how long it took to finish or
    fail.
    """
    print_with_style(f"Starting '{task.name}'...")
    start = time.perf_counter()
    try:
        task()
    except Exception:
        elapsed = _format_elapsed(time.perf_counter() - start)
        print_with_style(f"'{task.name}' errored after {elapsed}", file='stderr', style='red')
        raise
    elapsed = _format_elapsed(time.perf_counter() - start)
    print_with_style(f"Finished '{task.name}' after {elapsed}")


class _CompositeTask(Task):
    def __init__(self, tasks: Iterable[Task], name: str | None = None):
        self.tasks = list(tasks)
        if name:
            self.name = name

    def bind(self, context: Context):
        super().bind(context)
        for task in self.tasks:
            context.bind(task)

    def iter_tasks(self):
        yield self
        for task in self.tasks:
            yield from task.iter_tasks()


class Sequential(_CompositeTask):
    """
    A Task running its members one after another. The first failure stops the
    sequence and propagates.
    """
    def __init__(self, tasks: Iterable[Task], name: str | None = None):
        super().__init__(tasks, name)
        if not name:
            self.name = f"series({', '.join(task.name for task in self.tasks)})"
        self._cancelled = threading.Event()
        self._current: Task | None = None

    def cancel(self):
        self._cancelled.set()
        if current := self._current:
            current.cancel()

    def __call__(self):
        self._cancelled.clear()
        for task in self.tasks:
            if self._cancelled.is_set():
                break
            self._current = task
            try:
                run_logged(task)
            finally:
                self._current = None


class Parallel(_CompositeTask):
    """
    A Task starting all of its members at once and completing when all of them
    have. When one fails, the others are asked to cancel and the first failure
    in declaration order propagates.
    """
    def __init__(self, tasks: Iterable[Task], name: str | None = None):
        super().__init__(tasks, name)
        if not name:
            self.name = f"parallel({', '.join(task.name for task in self.tasks)})"

    def cancel(self):
        for task in self.tasks:
            task.cancel()

    def __call__(self):
        if not self.tasks:
            return
        with ThreadPoolExecutor(max_workers=len(self.tasks), thread_name_prefix='sprat') as executor:
            futures = [executor.submit(run_logged, task) for task in self.tasks]
            try:
                done, _pending = wait(futures, return_when=FIRST_EXCEPTION)
                if any(f.exception() for f in done):
                    self.cancel()
                wait(futures)
            except BaseException:
                # Interrupted while waiting; members must wind down before the
                # executor can shut down.
                self.cancel()
                raise

        for future in futures:
            if (error := future.exception()) is not None:
                raise error


def sequential(*tasks: Task, name: str | None = None):
    """
    Compose @tasks into a Task running them in order.
    """
    return Sequential(tasks, name)


def parallel(*tasks: Task, name: str | None = None):
    """
    Compose @tasks into a Task running them concurrently.
    """
    return Parallel(tasks, name)


class SpratError(Exception):
    """
    Base class for build failures which abort the enclosing pipeline.
    """


class TaskUnavailableException(Exception):
    """
    Exception raised when a task to be used is unavailable due to missing
    dependencies.
    """
    def __init__(self, task: Task, *args: t.Any):
        self.task = task
        super().__init__(task, *args)
