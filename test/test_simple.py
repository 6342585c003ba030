import subprocess
from pathlib import Path

import pytest

from sprat.deploy import DeployError, RsyncDeployTask
from sprat.simple import BaseStandardTask, CleanTask, CollectTask
from sprat.test_harness import make_context, write_files


@pytest.fixture
def context(tmp_path: Path):
    return make_context(tmp_path / 'src', tmp_path)


def test_clean(context):
    output: Path = context['output_dir']
    write_files(output, {'index.html': '', 'css/app.min.css': '', 'a/b/c.txt': ''})
    task = CleanTask()
    context.bind(task)
    task()
    assert output.is_dir()
    assert list(output.iterdir()) == []


def test_clean_missing_output(context):
    task = CleanTask()
    context.bind(task)
    task()
    assert not context['output_dir'].exists()


def test_collect(context):
    source: Path = context['source_dir']
    write_files(source, {
        'js/app.min.js': 'js',
        'js/main.js': '',
        'css/app.min.css': 'css',
        'css/extra.css': '',
        'images/dist/logo.png': 'png',
        'images/src/logo.png': '',
        'images/readme': '',
        'fonts/sample.woff2': 'font',
        'fonts/licenses/OFL': 'license',
        'styles/sass/app.scss': '',
        'index.html': '',
    })
    task = CollectTask()
    context.bind(task)
    task()

    output: Path = context['output_dir']
    collected = sorted(p.relative_to(output).as_posix() for p in output.rglob('*') if p.is_file())
    assert collected == [
        'css/app.min.css',
        'fonts/licenses/OFL',
        'fonts/sample.woff2',
        'images/dist/logo.png',
        'js/app.min.js',
    ]
    assert (output / 'js/app.min.js').read_text() == 'js'


def test_write_output_replaces(tmp_path: Path):
    class Writer(BaseStandardTask):
        def __call__(self):
            pass

    path = tmp_path / 'out/file.txt'
    Writer().write_output(path, 'first')
    Writer().write_output(path, 'second')
    assert path.read_text() == 'second'
    assert [p.name for p in path.parent.iterdir()] == ['file.txt']


def test_rsync_command(context):
    task = RsyncDeployTask('user@example.com', 'site/public_html/', include=['.htaccess'])
    context.bind(task)
    output = context['output_dir'].as_posix()
    assert task.get_command() == [
        'rsync', '--archive', '--compress', '--delete',
        '--include=.htaccess',
        '--exclude=**/Thumbs.db', '--exclude=**/*.DS_Store',
        '-e', 'ssh',
        f'{output}/', 'user@example.com:site/public_html/',
    ]


def test_rsync_command_options(context):
    task = RsyncDeployTask('example.com', '/srv/www', exclude=(), compress=False, clean=False)
    context.bind(task)
    command = task.get_command()
    assert '--compress' not in command
    assert '--delete' not in command
    assert not any(arg.startswith('--exclude') for arg in command)
    assert command[-1] == 'example.com:/srv/www'


def test_rsync_failure(context, monkeypatch: pytest.MonkeyPatch):
    def fail(*args, **kwargs):
        raise subprocess.CalledProcessError(23, args[0], output='rsync: connection unexpectedly closed')

    monkeypatch.setattr(subprocess, 'check_output', fail)
    task = RsyncDeployTask('user@example.com', 'site/')
    task.bind(context)
    with pytest.raises(DeployError, match='status 23'):
        task()
