"""
Polling file watchers rerunning a single task, or reloading browsers, when
matching source files change.
"""
from __future__ import annotations

import os
import threading
import typing as t
from pathlib import Path

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers.polling import PollingObserver

from .core import Context, Matcher, Task, run_logged
from .pretty_utils import print_with_style


class WatchBinding(t.NamedTuple):
    """
    Associates source files accepted by @matcher with the @task to rerun when
    they change. Without a task, a change triggers a full browser reload.
    """
    name: str
    matcher: Matcher[t.Any]
    task: Task | None = None


class _BindingHandler(FileSystemEventHandler):
    ignored_events = frozenset({'opened', 'closed_no_write'})

    def __init__(self, context: Context, matcher: Matcher[t.Any], pending: threading.Event):
        self.context = context
        self.matcher = matcher
        self.pending = pending

    def on_any_event(self, event: FileSystemEvent):
        if event.is_directory or event.event_type in self.ignored_events:
            return
        for raw_path in (event.src_path, getattr(event, 'dest_path', '')):
            if raw_path and self.matcher(self.context, Path(os.fsdecode(raw_path))):
                self.pending.set()
                return


class WatchTask(Task):
    """
    Watches the source tree with a polling observer until stopped. Changes
    arriving while the bound task runs are coalesced into one more run, so
    runs of one binding never overlap. A failing run is reported and watching
    continues.
    """
    def __init__(self,
                 binding: WatchBinding,
                 stop: threading.Event | None = None,
                 poll_interval: float = 0.5):
        self.binding = binding
        self.name = f'watch:{binding.name}'
        self.stop = stop or threading.Event()
        self.poll_interval = poll_interval
        self.pending = threading.Event()
        self.ready = threading.Event()
        self.runs = 0

    def bind(self, context: Context):
        super().bind(context)
        context.bind(self.binding.task)

    def iter_tasks(self):
        yield self
        if self.binding.task:
            yield from self.binding.task.iter_tasks()

    def cancel(self):
        self.stop.set()
        self.pending.set()

    def trigger(self):
        """
        React to a change: rerun the bound task, or ask browsers to reload.
        """
        self.runs += 1
        task = self.binding.task
        if task is None:
            self.context.notify('reload')
            return
        try:
            run_logged(task)
        except Exception as e:  # pylint: disable=broad-exception-caught
            print_with_style(str(e), file='stderr', style='red')

    def __call__(self):
        self.pending.clear()
        observer = PollingObserver(timeout=self.poll_interval)
        observer.schedule(
            _BindingHandler(self.context, self.binding.matcher, self.pending),
            str(self.context['source_dir']),
            recursive=True,
        )
        observer.start()
        self.ready.set()
        try:
            while not self.stop.is_set():
                if not self.pending.wait(self.poll_interval) or self.stop.is_set():
                    continue
                self.pending.clear()
                self.trigger()
        finally:
            self.ready.clear()
            observer.stop()
            observer.join()
