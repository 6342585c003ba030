"""
The development session: a server for the source tree and the file watchers,
run together as one task group that can be stopped deterministically.
"""
from __future__ import annotations

import threading
import typing as t

from .core import Parallel, Task
from .pretty_utils import print_with_style
from .reload import DEFAULT_LIVE_PORT, LiveReloadServer
from .server import Handler, ThreadedHTTPServer
from .watch import WatchBinding, WatchTask


class ServerTask(Task):
    """
    Serves the source tree, with includes expanded, and the live-reload
    endpoint on @live_port until @stop is set.
    """
    name = 'server'

    def __init__(self,
                 stop: threading.Event,
                 host: str = 'localhost',
                 port: int = 3000,
                 live_port: int = DEFAULT_LIVE_PORT):
        self.stop = stop
        self.host = host
        self.port = port
        self.live_port = live_port
        self.ready = threading.Event()
        self.address: tuple[str, int] | None = None

    def cancel(self):
        self.stop.set()

    def __call__(self):
        reloader = self.context.reloader
        reloader.start(self.host, self.live_port)
        try:
            self.serve(reloader)
        finally:
            reloader.stop()

    def serve(self, reloader: LiveReloadServer):
        with ThreadedHTTPServer(
            (self.host, self.port),
            Handler,
            directory=self.context['source_dir'],
            reloader=reloader,
        ) as httpd:
            self.address = (self.host, httpd.server_address[1])
            thread = threading.Thread(target=httpd.serve_forever, daemon=True)
            thread.start()
            print_with_style(f'Serving at http://{self.host}:{self.address[1]}', style='green')
            print_with_style(f'Live reload on port {reloader.port}', style='green')
            self.ready.set()
            try:
                self.stop.wait()
            finally:
                self.ready.clear()
                httpd.shutdown()
                thread.join()


class DevSession(Parallel):
    """
    Runs the dev server and one watcher per binding concurrently until
    `stop()` is called, or the waiting thread is interrupted.
    """
    def __init__(self,
                 bindings: t.Iterable[WatchBinding],
                 host: str = 'localhost',
                 port: int = 3000,
                 poll_interval: float = 0.5,
                 live_port: int = DEFAULT_LIVE_PORT,
                 name: str = 'serve'):
        self.stop_event = threading.Event()
        self.server_task = ServerTask(self.stop_event, host, port, live_port)
        self.watch_tasks = [WatchTask(b, self.stop_event, poll_interval) for b in bindings]
        super().__init__([self.server_task, *self.watch_tasks], name)

    def cancel(self):
        self.stop_event.set()
        super().cancel()

    def stop(self):
        self.cancel()

    def wait_ready(self, timeout: float | None = None):
        """
        Wait until the server listens and every watcher has its initial
        snapshot. Returns whether that happened within @timeout seconds.
        """
        members = [self.server_task, *self.watch_tasks]
        return all(m.ready.wait(timeout) for m in members)

    def __call__(self):
        self.stop_event.clear()
        super().__call__()
