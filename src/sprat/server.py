from __future__ import annotations

import argparse
import hashlib
import http.server
import mimetypes
import os
import pathlib
import re
import typing

from .includes import IncludeError, IncludeResolver
from .pretty_utils import print_with_style
from .reload import LiveReloadServer

if typing.TYPE_CHECKING:
    from socketserver import _AfInetAddress


INDEX_FILE = 'index.html'
# Default used by nginx
DEFAULT_MIME_TYPE = 'application/octet-stream'
MARKUP_SUFFIXES = ('.html', '.htm')

_BODY_END = re.compile(r'</body\s*>', re.IGNORECASE)


def inject_client(markup: str, script: str):
    """
    Insert @script before the last closing body tag, or at the end of
    documents without one.
    """
    if not script:
        return markup
    matches = list(_BODY_END.finditer(markup))
    if not matches:
        return markup + script
    index = matches[-1].start()
    return markup[:index] + script + markup[index:]


class ThreadedHTTPServer(http.server.ThreadingHTTPServer):
    """
    A simple HTTP server that handles each request in a separate thread,
    serving @directory with includes expanded. Markup gets the client of
    @reloader injected while it is running.
    """
    RequestHandlerClass: typing.Type[http.server.SimpleHTTPRequestHandler]
    def __init__(self,
                  server_address: _AfInetAddress,
                  RequestHandlerClass: typing.Type[http.server.SimpleHTTPRequestHandler],
                  directory: str | pathlib.Path = '.',
                  reloader: LiveReloadServer | None = None,
                  bind_and_activate: bool = True) -> None:
        super().__init__(server_address, RequestHandlerClass, bind_and_activate)
        self.directory = os.path.abspath(directory)
        self.reloader = reloader or LiveReloadServer()
        self.resolver = IncludeResolver(pathlib.Path(self.directory))

    def finish_request(self, request, client_address) -> None:
        self.RequestHandlerClass(request, client_address, self, directory=self.directory)


class Handler(http.server.SimpleHTTPRequestHandler):
    server: ThreadedHTTPServer

    def log_message(self, format, *args):
        # pylint: disable=redefined-builtin
        print_with_style(f'{self.address_string()} - {format % args}', file='stderr', style='dim')

    def get_etag(self, file_path):
        """
        Generate an etag for a file based on its path and modification time.
        """
        mtime = os.path.getmtime(file_path)
        file_size = os.path.getsize(file_path)
        file_info = f"{file_size}-{mtime}"
        return hashlib.md5(file_info.encode('utf-8')).hexdigest()

    def not_modified(self, etag: str):
        return self.headers.get('If-None-Match') == etag

    def send_ok_headers(self, mime_type: str, etag: str, length: int):
        self.send_response(200)
        self.send_header('Content-type', mime_type)
        self.send_header('Content-Length', str(length))
        self.send_header('ETag', etag)
        self.send_header('Cache-Control', 'no-cache')
        self.end_headers()

    def do_GET(self):
        self.respond(include_body=True)

    def do_HEAD(self):
        self.respond(include_body=False)

    def respond(self, include_body: bool):
        try:
            file_path = pathlib.Path(self.translate_path(self.path))
            if file_path.is_dir():
                file_path /= INDEX_FILE

            # Double-check that we haven't escaped the directory.
            # self.translate_path() should discard any suspicious path
            # components, but it's better to be safe.
            if not file_path.is_relative_to(self.directory):
                return self.send_error(403, 'Forbidden')

            if file_path.suffix in MARKUP_SUFFIXES:
                self.send_markup(file_path, include_body)
            else:
                self.send_file(file_path, include_body)
        except FileNotFoundError:
            self.send_error(404, f'File Not Found: {self.path}')
        except IncludeError as e:
            self.send_error(500, str(e))

    def send_markup(self, file_path: pathlib.Path, include_body: bool = True):
        """
        Serve a markup file with includes expanded and the live-reload client
        injected.
        """
        markup = self.server.resolver.render(file_path)
        body = inject_client(markup, self.server.reloader.client_script()).encode('utf-8')
        etag = hashlib.md5(body).hexdigest()
        if self.not_modified(etag):
            self.send_response(304)
            self.end_headers()
            return
        mime_type, _enc = mimetypes.guess_type(file_path)
        self.send_ok_headers(mime_type or 'text/html', etag, len(body))
        if include_body:
            self.wfile.write(body)

    def send_file(self, file_path: pathlib.Path, include_body: bool = True):
        etag = self.get_etag(file_path)
        # Check if the client already has the file
        if self.not_modified(etag):
            self.send_response(304)
            self.end_headers()
            return
        # Get the file extension and set the MIME type accordingly
        mime_type, _enc = mimetypes.guess_type(file_path)
        self.send_ok_headers(mime_type or DEFAULT_MIME_TYPE, etag, os.path.getsize(file_path))
        if not include_body:
            return
        # Serve the file
        with open(file_path, 'rb') as file:
            # Serve the file in chunks to avoid reading the entire file
            # into memory
            chunk_size = 8192
            while True:
                chunk = file.read(chunk_size)
                if not chunk:
                    break
                self.wfile.write(chunk)


def serve(port: int, directory: str | pathlib.Path, host: str = 'localhost'):
    with ThreadedHTTPServer((host, port), Handler, directory=directory) as httpd:
        print_with_style(f'Serving {directory} at http://{host}:{port}', style='green')
        httpd.serve_forever()


def main(arguments: list[str] | None = None):
    parser = argparse.ArgumentParser(description='Serve a source tree with server-side includes expanded.')
    parser.add_argument('-p', '--port',
                        help='port to serve from',
                        type=int,
                        default=3000)
    parser.add_argument('-d', '--directory',
                        help='directory to serve',
                        type=pathlib.Path,
                        default='.')
    args = parser.parse_args(arguments)
    serve(args.port, args.directory)


if __name__ == '__main__':
    main()
