"""
Simple Tasks for managing the output tree, and base classes for Tasks that
write text artifacts or invoke external commandline tools.
"""
from __future__ import annotations

import abc
import os
import shutil
import subprocess
import tempfile
import typing as t
from pathlib import Path

from .core import Task, _rm_children
from .paths import glob
from .pretty_utils import print_with_style, track_progress

if t.TYPE_CHECKING:
    from _typeshed import StrOrBytesPath


class CleanTask(Task):
    """
    Empty the output directory, keeping the directory itself. A missing
    directory is not an error.
    """
    name = 'clean'

    def __call__(self):
        _rm_children(self.context['output_dir'])


class CollectTask(Task):
    """
    Copy already-built artifacts from the source tree into the output tree,
    preserving their paths relative to the source root.
    """
    name = 'collect'
    patterns = (
        '{js,css}/*.min.*',
        'images/**/*.*',
        '!images/src/**',
        'fonts/**/*',
    )

    def __init__(self, patterns: t.Sequence[str] | None = None):
        if patterns is not None:
            self.patterns = tuple(patterns)

    def __call__(self):
        source_dir: Path = self.context['source_dir']
        output_dir: Path = self.context['output_dir']
        for path in track_progress(self.context.find(glob(*self.patterns)), 'Collecting...'):
            target_path = output_dir / path.relative_to(source_dir)
            target_path.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(path, target_path)


class BaseStandardTask(Task):
    """
    A base class providing helper behaviors for tasks writing text artifacts.
    """
    encoding = 'utf-8'
    newline = '\n'

    def write_output(self, path: Path, data: str):
        """
        Replace @path with @data. The previous file stays intact until the new
        content is completely written.
        """
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, temp_name = tempfile.mkstemp(prefix=f'.{path.name}.', dir=path.parent)
        try:
            with open(fd, 'w', encoding=self.encoding, newline=self.newline) as file:
                file.write(data)
            os.replace(temp_name, path)
        except BaseException:
            Path(temp_name).unlink(missing_ok=True)
            raise


class BaseCommandTask(Task):
    """
    A base class for tasks that run a single external command.
    """
    @abc.abstractmethod
    def get_command(self) -> list[StrOrBytesPath]:
        """
        Abstract method that must return a commandline ready for subprocess.
        """

    def run_command(self) -> str:
        """
        Run the command, echo its combined output, and return it.
        """
        output = subprocess.check_output(
            self.get_command(),
            stderr=subprocess.STDOUT,
            text=True,
        )
        if output:
            print_with_style(output.rstrip())
        return output

    def __call__(self):
        self.run_command()
