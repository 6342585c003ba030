"""
Mirroring the output tree to a remote host with rsync over ssh.
"""
from __future__ import annotations

import subprocess
import typing as t

from .core import SpratError
from .dependencies import WebExecDependency
from .simple import BaseCommandTask


class DeploySettings(t.TypedDict, total=False):
    """
    Options for `RsyncDeployTask`. @hostname may include a user, as in
    `user@example.com`.
    """
    hostname: str
    destination: str
    include: list[str]
    exclude: list[str]
    compress: bool
    clean: bool


class DeployError(SpratError):
    """
    rsync exited with an error.
    """


class RsyncDeployTask(BaseCommandTask):
    """
    One-way mirror of the output directory to @hostname:@destination. With
    @clean, remote files missing locally are deleted.
    """
    name = 'deploy'

    def __init__(self,
                 hostname: str,
                 destination: str,
                 include: t.Iterable[str] = (),
                 exclude: t.Iterable[str] = ('**/Thumbs.db', '**/*.DS_Store'),
                 compress: bool = True,
                 clean: bool = True):
        self.hostname = hostname
        self.destination = destination
        self.include = list(include)
        self.exclude = list(exclude)
        self.compress = compress
        self.clean = clean

    def get_dependencies(self):
        return {WebExecDependency('rsync', 'https://rsync.samba.org/download.html')}

    def get_command(self):
        command = ['rsync', '--archive']
        if self.compress:
            command.append('--compress')
        if self.clean:
            command.append('--delete')
        command.extend(f'--include={pattern}' for pattern in self.include)
        command.extend(f'--exclude={pattern}' for pattern in self.exclude)
        command.extend([
            '-e', 'ssh',
            f"{self.context['output_dir'].as_posix().rstrip('/')}/",
            f'{self.hostname}:{self.destination}',
        ])
        return command

    def __call__(self):
        try:
            self.run_command()
        except subprocess.CalledProcessError as e:
            raise DeployError(f'rsync exited with status {e.returncode}:\n{e.output}') from e
