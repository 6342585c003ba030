"""
Persistent change detection for tasks that should skip unchanged inputs.
"""
from __future__ import annotations

import hashlib
import json
import typing as t
from importlib.metadata import version
from pathlib import Path

from .pretty_utils import print_with_style

if t.TYPE_CHECKING:
    from .core import Context


_JsonSerializable: t.TypeAlias = 'str | int | float | bool | None | _JsonDict | list[_JsonSerializable]'
_JsonDict = dict[str, _JsonSerializable]


def checksum(path: Path, hashname: str = 'sha1', _bufsize=2**18):
    """
    Calculate a checksum for a `Path`. Directories result in empty checksums.
    """
    if path.is_dir():
        return ''
    digest = hashlib.new(hashname)

    buf = bytearray(_bufsize)
    view = memoryview(buf)
    with path.open('rb') as file:
        while True:
            size = file.readinto(buf)
            if size == 0:
                break  # EOF
            digest.update(view[:size])

    return digest.hexdigest()


class ChangeCache:
    """
    Records a fingerprint for every source and output path a task handled, so
    a later run can tell which outputs are still current. Paths are stored
    relative to the context's directories, keeping the cache file valid when a
    project moves.
    """
    encoding = 'utf-8'
    newline = '\n'
    context: Context

    def __init__(self, path: Path | None, parameters: _JsonDict | None = None):
        self.path = path
        self.parameters: _JsonDict = {'sprat_version': version('sprat')}
        if parameters:
            self.parameters.update(parameters)
        self.stale_parameters = True

        # output_key: {'source': source_key, 'meta': {key: fingerprint}}
        self.records: dict[str, _JsonDict] = {}
        self.prior_records: dict[str, _JsonDict] = {}

    def bind(self, context: Context):
        self.context = context

    def genericize_path(self, path: Path):
        """
        Convert a path into a key relative to the context directory holding it.
        """
        for dir_key in ('source_dir', 'output_dir'):
            parent: Path = self.context[dir_key]
            if path.is_relative_to(parent):
                return (dir_key / path.relative_to(parent)).as_posix()
        return path.as_posix()

    def fingerprint(self, path: Path) -> _JsonDict:
        stat = path.stat()
        return {'sha1': checksum(path), 'm_time': stat.st_mtime, 'size': stat.st_size}

    def load(self):
        """
        Load prior records from the cache file, if there is one, and evaluate
        parameter staleness.
        """
        self.records = {}
        if not self.path or not self.path.exists():
            return
        data = json.loads(self.path.read_text(self.encoding))
        self.stale_parameters = self.parameters != data['parameters']
        self.prior_records = data['records']

    def dump(self):
        """
        Write the records of this run, plus the still-valid prior records of
        paths this run did not touch, to the cache file.
        """
        if not self.path:
            return
        records = dict(self.prior_records) if not self.stale_parameters else {}
        records.update(self.records)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open('w', encoding=self.encoding, newline=self.newline) as file:
            json.dump({'parameters': self.parameters, 'records': records}, file, indent=2)

    def refresh_needed(self, source: Path, output: Path) -> tuple[bool, str]:
        """
        Determine whether @output must be regenerated from @source.

        :return: Whether the work should be redone and a message explaining
            why or why not.
        """
        if not output.exists():
            return True, f'Missing output ({output})'

        if not self.path:
            # Without a cache file, fall back to comparing modification times.
            if output.stat().st_mtime < source.stat().st_mtime:
                return True, f'Newer source ({source})'
            return False, 'Up to date'

        if self.stale_parameters:
            return True, 'Stale parameters'

        o_key = self.genericize_path(output)
        try:
            prior = t.cast(_JsonDict, self.prior_records[o_key])
        except KeyError:
            return True, f'Missing record ({output})'

        s_key = self.genericize_path(source)
        meta = t.cast(_JsonDict, prior['meta'])
        if prior['source'] != s_key or s_key not in meta:
            return True, f'Missing upstream record ({source})'
        if t.cast(_JsonDict, meta[s_key])['sha1'] != checksum(source):
            return True, f'Stale upstream ({s_key})'
        if t.cast(_JsonDict, meta[o_key])['sha1'] != checksum(output):
            return True, f'Stale downstream ({o_key})'

        return False, 'Up to date'

    def add_step(self, source: Path, output: Path, stale_msg: str):
        """
        Record that @output was regenerated from @source.
        """
        print_with_style(f'{stale_msg}...\n{source} ⇒ {output}')
        self._record(source, output)

    def skip_step(self, source: Path, output: Path):
        """
        Record that @output was left alone because it is current.
        """
        print_with_style('Skipped', f'{source} ⇒ {output}', style='yellow')
        self._record(source, output)

    def forget(self, output: Path):
        """
        Drop any record of @output, for outputs whose source no longer exists.
        """
        o_key = self.genericize_path(output)
        self.records.pop(o_key, None)
        self.prior_records.pop(o_key, None)

    def _record(self, source: Path, output: Path):
        if not self.path:
            return
        s_key = self.genericize_path(source)
        o_key = self.genericize_path(output)
        self.records[o_key] = {
            'source': s_key,
            'meta': {s_key: self.fingerprint(source), o_key: self.fingerprint(output)},
        }
