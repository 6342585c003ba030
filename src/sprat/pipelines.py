"""
The named pipelines of a sprat project, composed from the leaf tasks.
"""
from __future__ import annotations

from .core import Context, ProjectSettings, Task, parallel, sequential
from .deploy import RsyncDeployTask
from .dev import DevSession
from .images import ImagesTask
from .includes import IncludesTask
from .paths import glob
from .scripts import ScriptsTask
from .simple import CleanTask, CollectTask
from .styles import StylesTask
from .watch import WatchBinding


TASK_NAMES = ('default', 'build', 'scripts', 'styles', 'images', 'assets', 'deploy')


def watch_bindings(settings: ProjectSettings, tasks: dict[str, Task]):
    """
    Bind the style, script, and image sources to their tasks, and the
    uncompiled file types to a full reload.
    """
    style_dir = f"styles/{settings['preprocessor'].value}"
    bindings = [
        WatchBinding('styles', glob(f'{style_dir}/**/*'), tasks['styles']),
        WatchBinding('scripts', glob('js/**/*.js', '!js/**/*.min.js'), tasks['scripts']),
        WatchBinding('images', glob('images/src/**/*'), tasks['images']),
    ]
    if extensions := settings['watch_extensions']:
        bindings.append(WatchBinding('reload', glob(f"**/*.{{{','.join(extensions)}}}")))
    return bindings


def build_tasks(settings: ProjectSettings) -> dict[str, Task]:
    """
    Create every named task of a project. Leaf tasks are shared between the
    pipelines using them.
    """
    leaves: dict[str, Task] = {
        'scripts': ScriptsTask(settings['provide']),
        'styles': StylesTask(settings['preprocessor']),
        'images': ImagesTask(settings['image_cache']),
    }
    scripts, styles, images = leaves['scripts'], leaves['styles'], leaves['images']

    session = DevSession(
        watch_bindings(settings, leaves),
        host=settings['host'],
        port=settings['port'],
        poll_interval=settings['poll_interval'],
        live_port=settings['live_port'],
    )
    return {
        **leaves,
        'assets': parallel(scripts, styles, images, name='assets'),
        'build': sequential(
            CleanTask(),
            images,
            scripts,
            styles,
            CollectTask(),
            IncludesTask(),
            name='build',
        ),
        'deploy': RsyncDeployTask(**settings['deploy']),
        'default': sequential(scripts, styles, images, session, name='default'),
    }


def create_context(settings: ProjectSettings):
    """
    Create a Context holding every named task of the project described by
    @settings.
    """
    return Context(settings, build_tasks(settings))
