"""
This is the toolkit for sprat's own CLI, but offers an accessible API for
building project-specific CLIs.
"""
from __future__ import annotations

import argparse
import importlib
import runpy
import sys
import typing as t
from pathlib import Path

from .core import Context, InputProjectSettings, ProjectSettings, SpratError, Task, TaskUnavailableException
from .deploy import DeploySettings
from .pipelines import TASK_NAMES, create_context
from .pretty_utils import print_with_style
from .reload import DEFAULT_LIVE_PORT
from .scripts import Provide
from .styles import Preprocessor


DEFAULT_CONFIG = Path('sprat_config.py')
DEFAULT_WATCH_EXTENSIONS = 'html,htm,txt,json,md,woff,woff2'
_JQUERY = Provide(Path('js/vendor/jquery.min.js'), 'jQuery')
DEFAULT_PROVIDE = {'$': _JQUERY, 'jQuery': _JQUERY}
DEFAULT_DEPLOY = DeploySettings(
    hostname='username@yoursite.com',
    destination='yoursite/public_html/',
)


def split_extensions(extensions: str | t.Sequence[str]):
    """
    Normalize a comma-separated string or a sequence of file extensions into a
    tuple without leading dots.
    """
    if isinstance(extensions, str):
        extensions = extensions.split(',')
    return tuple(e.strip().lstrip('.') for e in extensions if e.strip())


class ProjectNamespace:
    """
    Internal used to preserve typing between InputProjectSettings, argparse,
    and ProjectSettings.
    """
    source_dir: Path
    output_dir: Path
    preprocessor: Preprocessor | str
    watch_extensions: str | t.Sequence[str]
    image_cache: Path | None
    host: str
    port: int
    live_port: int
    poll_interval: float

    def __init__(self, settings: InputProjectSettings | None = None):
        self.provide: dict[str, Provide] = dict(DEFAULT_PROVIDE)
        self.deploy = DeploySettings()
        if settings:
            self.__dict__.update(settings)

    def to_project_settings(self):
        """
        Convert this argparse-oriented namespace into Context-ready
        ProjectSettings. Raises ValueError for an unknown preprocessor.
        """
        return ProjectSettings(
            source_dir=self.source_dir,
            output_dir=self.output_dir,
            preprocessor=Preprocessor(self.preprocessor),
            watch_extensions=split_extensions(self.watch_extensions),
            image_cache=self.image_cache,
            provide=self.provide,
            deploy=DeploySettings(**(DEFAULT_DEPLOY | self.deploy)),
            host=self.host,
            port=self.port,
            live_port=self.live_port,
            poll_interval=self.poll_interval,
        )


def add_settings_arguments(parser: argparse.ArgumentParser):
    """
    Add the arguments overriding project settings to @parser.
    """
    parser.add_argument('-i', '--source',
                        help='source directory with raw files, served in dev mode',
                        type=Path,
                        dest='source_dir',
                        default=Path('src'))
    parser.add_argument('-o', '--output',
                        help='output directory for final built files',
                        type=Path,
                        dest='output_dir',
                        default=Path('dist'))
    parser.add_argument('--preprocessor',
                        help='stylesheet language to compile',
                        choices=[p.value for p in Preprocessor],
                        default=Preprocessor.SASS.value)
    parser.add_argument('--watch-extensions',
                        help='comma-separated extensions triggering a full reload when changed',
                        default=DEFAULT_WATCH_EXTENSIONS)
    parser.add_argument('--image-cache',
                        help='path to a cache file for image change detection',
                        type=Path,
                        default=Path('.sprat-cache.json'))
    parser.add_argument('--host',
                        help='host for the dev server',
                        default='localhost')
    parser.add_argument('-p', '--port',
                        help='port for the dev server',
                        type=int,
                        default=3000)
    parser.add_argument('--live-port',
                        help='port for the live reload websocket',
                        type=int,
                        default=DEFAULT_LIVE_PORT)
    parser.add_argument('--poll-interval',
                        help='seconds between file watcher polls',
                        type=float,
                        default=0.5)
    return parser


def parse_settings_args(settings: InputProjectSettings | None = None, argv: list[str] | None = None, **kw):
    """
    Combine an instance of InputProjectSettings with CLI arguments to produce
    a ProjectNamespace, which can be easily turned into ProjectSettings.
    """
    parser = add_settings_arguments(argparse.ArgumentParser(**kw))
    return parser.parse_args(argv, namespace=ProjectNamespace(settings))


def resolve_settings(settings: InputProjectSettings | None = None, argv: list[str] | None = None) -> ProjectSettings:
    """
    Fill in defaults (and any CLI arguments in @argv) for @settings.
    """
    return parse_settings_args(settings, argv=argv or []).to_project_settings()


def load_config(config_file: Path | None, module: t.Any = None) -> InputProjectSettings | None:
    """
    Return the SETTINGS of a config file or an imported config module. With
    neither, `sprat_config.py` in the working directory is used if present.
    """
    if module is not None:
        return getattr(module, 'SETTINGS', None)
    if config_file is None:
        if not DEFAULT_CONFIG.exists():
            return None
        config_file = DEFAULT_CONFIG
    return runpy.run_path(str(config_file)).get('SETTINGS')


def pprint_task(task: Task):
    """
    Prettily display dependency information for the given Task.
    """
    missing = [str(d) for d in task.get_dependencies() if not d.satisfied]
    if missing:
        text = ', '.join(missing)
        print_with_style(f'✗ {task.name} (missing: {text})', style='red')
    else:
        print_with_style(f'✓ {task.name}', style='green')


def pprint_missing_deps(task: Task):
    """
    Prettily display an error for the given Task with missing dependencies.
    """
    print_with_style(
        f"'{task.name}' is unavailable due to missing dependencies!",
        file='stderr',
        style='red'
    )
    for dep in task.get_dependencies():
        text = f'✓ {dep}' if dep.satisfied else f'✗ {dep}: {dep.install_hint}'
        print_with_style(text, style='green' if dep.satisfied else 'red')


def audit_tasks(context: Context, name: str):
    """
    Show every task the pipeline @name runs, with its dependency status.
    """
    seen: list[Task] = []
    for task in context.tasks[name].iter_tasks():
        if task not in seen:
            seen.append(task)
    print(f"Tasks in '{name}' ({len(seen)})")
    for task in seen:
        pprint_task(task)


def main(arguments: list[str] | None = None):
    """
    sprat main function. Reads a config file and command line arguments, then
    runs the requested task.
    """
    config_parser = argparse.ArgumentParser(add_help=False)
    config_group = config_parser.add_mutually_exclusive_group()
    config_group.add_argument('-c', '--config',
                              help='file path to a config file with a SETTINGS attribute',
                              type=Path,
                              dest='config_file',
                              default=None)
    config_group.add_argument('-m',
                              help='import path of a config module with a SETTINGS attribute',
                              type=importlib.import_module,
                              dest='module',
                              default=None)
    config_args, _remaining = config_parser.parse_known_args(arguments)
    settings = load_config(config_args.config_file, config_args.module)

    parser = argparse.ArgumentParser(
        description='Build, serve, and deploy a static site.',
        parents=[config_parser],
    )
    parser.add_argument('task',
                        help='task to run; the default builds assets, then serves and watches the source tree',
                        nargs='?',
                        choices=TASK_NAMES,
                        default='default')
    parser.add_argument('--audit-tasks',
                        help='show the tasks to run and whether their dependencies are installed, instead of running',
                        action='store_true')
    add_settings_arguments(parser)
    args = parser.parse_args(arguments, namespace=ProjectNamespace(settings))

    try:
        project_settings = args.to_project_settings()
    except ValueError as e:
        parser.error(str(e))
    context = create_context(project_settings)

    if args.audit_tasks:
        audit_tasks(context, args.task)
        return

    try:
        context.run(args.task)
    except TaskUnavailableException as e:
        pprint_missing_deps(e.task)
        sys.exit(1)
    except (SpratError, OSError) as e:
        print_with_style(str(e), file='stderr', style='red')
        sys.exit(1)
    except KeyboardInterrupt:
        if args.task != 'default':
            raise
        print_with_style('Dev session stopped.', style='yellow')
