"""
Live reload for the dev server. Browsers load livereload's client script and
connect back over a websocket to the endpoint served here by livereload's own
handlers, on a tornado loop running in a background thread.
"""
from __future__ import annotations

import asyncio
import threading
import typing as t

from livereload.handlers import LiveReloadHandler, LiveReloadJSHandler
from livereload.watcher import Watcher
from tornado import netutil, web
from tornado.httpserver import HTTPServer
from tornado.ioloop import IOLoop


ReloadKind = t.Literal['css', 'reload']

DEFAULT_LIVE_PORT = 35729

# The loader livereload's Server injects into pages. It fetches the client from
# the live port on whatever host served the page.
CLIENT_SCRIPT = (
    '<script type="text/javascript">(function(){'
    'var s=document.createElement("script");'
    'var port=%d;'
    's.src="//"+window.location.hostname+":"+port'
    '+ "/livereload.js?port=" + port;'
    'document.head.appendChild(s);'
    '})();</script>'
)

# livereload.js refreshes matching stylesheets in place for a .css path, and
# reloads the page for anything else.
RELOAD_PATHS: dict[ReloadKind, str] = {
    'css': 'css/app.min.css',
    'reload': '*',
}


class LiveReloadServer:
    """
    Serves the LiveReload websocket (`/livereload`) and client
    (`/livereload.js`) between `start()` and `stop()`. Notifications while the
    server is not running are dropped, so tasks can notify unconditionally.
    """
    def __init__(self):
        self.host: str | None = None
        self.port: int | None = None
        self._loop: IOLoop | None = None
        self._stopped: asyncio.Event | None = None
        self._thread: threading.Thread | None = None
        self._ready = threading.Event()

    @property
    def running(self):
        return self._loop is not None

    @property
    def client_count(self):
        return len(LiveReloadHandler.waiters)

    def client_script(self):
        """
        Return the markup loading the client, or an empty string when the
        server is not running.
        """
        if not self.running:
            return ''
        return CLIENT_SCRIPT % self.port

    def make_application(self):
        return web.Application([
            (r'/livereload', LiveReloadHandler),
            (r'/livereload.js', LiveReloadJSHandler),
        ])

    def start(self, host: str = 'localhost', port: int = DEFAULT_LIVE_PORT):
        """
        Listen on @host:@port (0 picks a free port, stored in `port`) and
        return once connections are accepted.
        """
        if self._thread is not None:
            raise RuntimeError('Live reload server is already running!')
        LiveReloadHandler.watcher = Watcher()
        LiveReloadHandler.live_css = True
        sockets = netutil.bind_sockets(port, host)
        self.host = host
        self.port = sockets[0].getsockname()[1]
        self._ready.clear()
        self._thread = threading.Thread(
            target=asyncio.run,
            args=(self._serve(sockets),),
            name='sprat-livereload',
            daemon=True,
        )
        self._thread.start()
        self._ready.wait()
        if not self.running:
            self._thread.join()
            self._thread = None
            raise RuntimeError(f'Live reload server failed to start on {host}:{self.port}!')

    async def _serve(self, sockets):
        try:
            server = HTTPServer(self.make_application())
            server.add_sockets(sockets)
            self._stopped = asyncio.Event()
            self._loop = IOLoop.current()
        finally:
            self._ready.set()
        try:
            await self._stopped.wait()
        finally:
            self._loop = None
            server.stop()
            for waiter in list(LiveReloadHandler.waiters):
                waiter.close()
            LiveReloadHandler.waiters.clear()

    def stop(self):
        """
        Disconnect every client and stop listening. Does nothing if the server
        is not running.
        """
        if self._thread is None:
            return
        loop, stopped = self._loop, self._stopped
        if loop is not None and stopped is not None:
            loop.add_callback(stopped.set)
        self._thread.join()
        self._thread = None

    def notify(self, kind: ReloadKind):
        """
        Ask connected browsers to refresh stylesheets (`css`) or reload the
        page (`reload`).
        """
        loop = self._loop
        if loop is not None:
            loop.add_callback(LiveReloadHandler.reload_waiters, RELOAD_PATHS[kind])
