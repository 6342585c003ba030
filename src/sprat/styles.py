"""
Stylesheet compilation: preprocessor selection, glob import expansion, and the
Task producing one prefixed, minified stylesheet.
"""
from __future__ import annotations

import abc
import enum
import re
import subprocess
import typing as t
from pathlib import Path

from .core import SpratError
from .dependencies import Dependency, PipDependency, WebExecDependency
from .paths import glob, glob_to_regex
from .simple import BaseStandardTask

if t.TYPE_CHECKING:
    from collections.abc import Sequence


class StyleCompileError(SpratError):
    """
    A stylesheet failed to compile.
    """


class Preprocessor(enum.Enum):
    """
    The supported stylesheet languages. The value doubles as the name of the
    directory holding the sources, below `styles/`.
    """
    SASS = 'sass'
    SCSS = 'scss'
    LESS = 'less'
    STYLUS = 'styl'


_GLOB_IMPORT = re.compile(
    r'''^(?P<indent>[ \t]*)@import[ \t]+(?P<quote>["'])(?P<pattern>[^"'\n]*[*?{][^"'\n]*)(?P=quote)(?P<end>[ \t]*;?)''',
    re.MULTILINE
)


def expand_import_globs(text: str, base_dir: Path, extensions: Sequence[str], strip_suffixes: Sequence[str] = ()):
    """
    Replace each `@import` of a glob with one `@import` per matching file below
    @base_dir, in sorted order. Only files ending with one of @extensions are
    considered. Matches ending with one of @strip_suffixes are imported without
    it.
    """
    def replace(match: re.Match[str]):
        regex = re.compile(glob_to_regex(match['pattern']))
        found = []
        for path in base_dir.rglob('*'):
            rel = path.relative_to(base_dir).as_posix()
            if path.is_file() and path.suffix in extensions and regex.match(rel):
                found.append(rel.removesuffix(path.suffix) if path.suffix in strip_suffixes else rel)
        found.sort()
        quote = match['quote']
        return '\n'.join(
            f"{match['indent']}@import {quote}{rel}{quote}{match['end']}"
            for rel in found
        )

    return _GLOB_IMPORT.sub(replace, text)


class StyleCompiler(abc.ABC):
    """
    Abstract base class for compilers turning one preprocessor's sources into
    plain CSS.
    """
    encoding = 'utf-8'
    extensions: tuple[str, ...] = ('.css',)
    # Suffixes dropped from expanded glob imports.
    strip_suffixes: tuple[str, ...] = ()

    def get_dependencies(self) -> set[Dependency]:
        return set()

    def compile(self, sources: Sequence[Path]) -> str:
        """
        Compile every path in @sources, after expanding glob imports, and join
        the results in order.
        """
        results = []
        for path in sources:
            text = expand_import_globs(
                path.read_text(self.encoding), path.parent, self.extensions, self.strip_suffixes
            )
            results.append(self.compile_text(path, text))
        return '\n'.join(results)

    @abc.abstractmethod
    def compile_text(self, path: Path, text: str) -> str:
        """
        Compile the already-read contents @text of @path.
        """


class SassCompiler(StyleCompiler):
    """
    Sass and SCSS compiler using libsass. Files ending in `.sass` use the
    indented syntax.
    """
    extensions = ('.sass', '.scss', '.css')
    # libsass inlines `.css` files only when imported without the suffix.
    strip_suffixes = ('.css',)

    def __init__(self, precision: int = 10):
        self.precision = precision

    def get_dependencies(self):
        return {PipDependency('libsass', check_name='sass')}

    def compile_text(self, path: Path, text: str):
        import sass
        try:
            return sass.compile(
                string=text,
                include_paths=[str(path.parent)],
                indented=path.suffix == '.sass',
                output_style='expanded',
                precision=self.precision,
            )
        except sass.CompileError as e:
            raise StyleCompileError(f'{path}: {e}') from e


class BaseCommandCompiler(StyleCompiler):
    """
    A base class for compilers reading a stylesheet on stdin and writing CSS to
    stdout.
    """
    @abc.abstractmethod
    def get_command(self, path: Path) -> list[str]:
        ...

    def compile_text(self, path: Path, text: str):
        try:
            result = subprocess.run(
                self.get_command(path),
                input=text,
                capture_output=True,
                check=True,
                text=True,
                encoding=self.encoding,
            )
        except subprocess.CalledProcessError as e:
            raise StyleCompileError(f'{path}: {e.stderr or e.stdout}'.strip()) from e
        return result.stdout


class LessCompiler(BaseCommandCompiler):
    """
    Less compiler using lessc.
    """
    extensions = ('.less', '.css')

    def get_dependencies(self):
        return {WebExecDependency('lessc', 'npm install -g less')}

    def get_command(self, path: Path):
        return ['lessc', f'--include-path={path.parent}', '-']


class StylusCompiler(BaseCommandCompiler):
    """
    Stylus compiler using the stylus executable, with plain CSS imports
    inlined.
    """
    extensions = ('.styl', '.css')

    def get_dependencies(self):
        return {WebExecDependency('stylus', 'npm install -g stylus')}

    def get_command(self, path: Path):
        return ['stylus', '--print', '--include-css', '--include', str(path.parent)]


COMPILERS: dict[Preprocessor, type[StyleCompiler]] = {
    Preprocessor.SASS: SassCompiler,
    Preprocessor.SCSS: SassCompiler,
    Preprocessor.LESS: LessCompiler,
    Preprocessor.STYLUS: StylusCompiler,
}


def get_compiler(preprocessor: Preprocessor | str) -> StyleCompiler:
    """
    Return a new compiler for @preprocessor, given as a `Preprocessor` or its
    value.
    """
    return COMPILERS[Preprocessor(preprocessor)]()


class StylesTask(BaseStandardTask):
    """
    Compile every non-partial stylesheet of the configured preprocessor, then
    prefix and minify the combined result with lightningcss into
    `css/app.min.css`. Compile errors propagate; the previous output is left
    untouched.
    """
    name = 'styles'
    output = Path('css/app.min.css')

    def __init__(self,
                 preprocessor: Preprocessor,
                 compiler: StyleCompiler | None = None,
                 browsers_list: Sequence[str] | None = ('defaults',)):
        self.preprocessor = preprocessor
        self.compiler = compiler or get_compiler(preprocessor)
        self.browsers_list = list(browsers_list) if browsers_list else None

    def get_dependencies(self):
        return self.compiler.get_dependencies() | {PipDependency('lightningcss')}

    @property
    def style_dir(self):
        return f'styles/{self.preprocessor.value}'

    def find_sources(self):
        return self.context.find(glob(f'{self.style_dir}/*.*', f'!{self.style_dir}/_*'))

    def postprocess(self, css: str):
        """
        Add vendor prefixes for the target browsers and minify.
        """
        import lightningcss
        try:
            return lightningcss.process_stylesheet(
                css,
                filename=self.output.name,
                browsers_list=self.browsers_list,
                minify=True,
            )
        except ValueError as e:
            raise StyleCompileError(f'{self.output.name}: {e}') from e

    def __call__(self):
        css = self.postprocess(self.compiler.compile(self.find_sources()))
        self.write_output(self.context['source_dir'] / self.output, css)
        self.context.notify('css')
