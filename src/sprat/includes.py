"""
Server-side include expansion, used both for building markup into the output
tree and by the dev server on the fly.
"""
from __future__ import annotations

import re
import shutil
from pathlib import Path

from .core import SpratError
from .paths import glob
from .pretty_utils import track_progress
from .simple import BaseStandardTask


INCLUDE_DIRECTIVE = re.compile(
    r'''<!--\#\s*include\s+(?P<kind>file|virtual)\s*=\s*(?P<quote>["'])(?P<target>.*?)(?P=quote)\s*-->''',
    re.IGNORECASE
)


class IncludeError(SpratError):
    """
    An include directive could not be resolved.
    """


class IncludeResolver:
    """
    Expands `<!--#include file="..." -->` and `<!--#include virtual="..." -->`
    directives recursively. `file` targets are relative to the including
    file; `virtual` targets starting with `/` are relative to @root. Targets
    may not leave @root.
    """
    encoding = 'utf-8'

    def __init__(self, root: Path):
        self.root = root

    def resolve_target(self, kind: str, target: str, including: Path):
        if kind.lower() == 'virtual' and target.startswith('/'):
            candidate = self.root / target.lstrip('/')
        else:
            candidate = including.parent / target
        resolved = candidate.resolve()
        if not resolved.is_relative_to(self.root.resolve()):
            raise IncludeError(f'{including}: include {target!r} escapes {self.root}')
        if not resolved.is_file():
            raise IncludeError(f'{including}: included file {target!r} not found')
        return resolved

    def expand(self, text: str, path: Path, _stack: tuple[Path, ...] = ()) -> str:
        """
        Return @text, the contents of @path, with every include directive
        replaced by the expanded contents of its target.
        """
        stack = _stack + (path.resolve(),)

        def replace(match: re.Match[str]):
            target = self.resolve_target(match['kind'], match['target'], path)
            if target in stack:
                chain = ' -> '.join(str(p) for p in stack + (target,))
                raise IncludeError(f'Include cycle: {chain}')
            return self.expand(target.read_text(self.encoding), target, stack)

        return INCLUDE_DIRECTIVE.sub(replace, text)

    def render(self, path: Path):
        """
        Read and expand the markup file at @path.
        """
        return self.expand(path.read_text(self.encoding), path)


class IncludesTask(BaseStandardTask):
    """
    Write every markup file of the source tree, with includes expanded, to the
    same relative path in the output tree. The output `partials` directory is
    removed afterwards.
    """
    name = 'includes'
    patterns = ('**/*.html',)
    partials_dir = 'partials'

    def __call__(self):
        source_dir: Path = self.context['source_dir']
        output_dir: Path = self.context['output_dir']
        resolver = IncludeResolver(source_dir)

        paths = self.context.find(glob(*self.patterns))
        for path in track_progress(paths, 'Expanding includes...'):
            self.write_output(output_dir / path.relative_to(source_dir), resolver.render(path))

        shutil.rmtree(output_dir / self.partials_dir, ignore_errors=True)
