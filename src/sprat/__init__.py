"""
sprat is a small static-site asset pipeline: it compiles stylesheets, bundles
scripts, optimizes images, expands server-side includes, deploys with rsync,
and serves the source tree with live reload while developing.
"""
from .core import (
    Context, InputProjectSettings, Matcher, Parallel, ProjectSettings, Sequential,
    SpratError, Task, TaskUnavailableException, parallel, sequential,
)
from .deploy import DeployError, DeploySettings, RsyncDeployTask
from .dev import DevSession, ServerTask
from .images import ImagesTask
from .includes import IncludeError, IncludeResolver, IncludesTask
from .paths import GlobMatcher, glob
from .pipelines import build_tasks, create_context
from .scripts import Provide, ScriptsTask
from .simple import CleanTask, CollectTask
from .styles import Preprocessor, StyleCompileError, StyleCompiler, StylesTask, get_compiler
from .watch import WatchBinding, WatchTask
