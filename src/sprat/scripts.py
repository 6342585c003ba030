"""
Script bundling: joins the top-level scripts into one minified file, making
provided global symbols available to every script that uses them.
"""
from __future__ import annotations

import re
import typing as t
from pathlib import Path

from .dependencies import PipDependency
from .paths import glob
from .pretty_utils import print_with_style
from .simple import BaseStandardTask


class Provide(t.NamedTuple):
    """
    A script providing a global: @source, relative to the source tree, defines
    the global expression @export.

    The symbol a Provide is keyed by must be a plain identifier such as `$` or
    `jQuery`. Dotted names like `window.jQuery` are rejected, since a dotted
    access is a property lookup rather than a free identifier.
    """
    source: Path
    export: str


_IDENTIFIER = re.compile(r'[A-Za-z_$][\w$]*')

# String literals, template literals and comments, which never hold references.
# Regular expression literals are not recognized.
_NON_CODE = re.compile(
    r'''"(?:\\.|[^"\\\n])*"|'(?:\\.|[^'\\\n])*'|`(?:\\.|[^`\\])*`|/\*.*?\*/|//[^\n]*''',
    re.DOTALL
)


def references(text: str, symbol: str):
    """
    Return whether @text appears to use the free identifier @symbol outside of
    strings and comments.
    """
    pattern = rf'(?<![\w$.]){re.escape(symbol)}(?![\w${{])'
    return re.search(pattern, _NON_CODE.sub(' ', text)) is not None


class ScriptsTask(BaseStandardTask):
    """
    Bundle `js/*.js` (minified files excluded) into `js/app.min.js` using the
    tdewolff minifier.

    Bundling errors are reported and swallowed: the task still completes
    normally so a dev session survives a transient syntax error.
    """
    name = 'scripts'
    output = Path('js/app.min.js')
    mimetype = 'application/javascript'

    def __init__(self, provide: dict[str, Provide] | None = None):
        self.provide = dict(provide or {})
        for symbol in self.provide:
            if not _IDENTIFIER.fullmatch(symbol):
                raise ValueError(f'Provided symbol {symbol!r} is not a plain identifier!')

    def get_dependencies(self):
        return {PipDependency('tdewolff-minify', check_name='minify')}

    def find_sources(self):
        return self.context.find(glob('js/*.js', '!js/*.min.js'))

    def wrap(self, text: str, symbols: list[str]):
        """
        Scope @text inside a function binding each provided symbol to its
        export.
        """
        params = ', '.join(symbols)
        args = ', '.join(self.provide[s].export for s in symbols)
        return f'(function ({params}) {{\n{text}\n}})({args});'

    def bundle(self, sources: list[Path]):
        """
        Join @sources into one unminified script, prefixed with the provider
        scripts they need.
        """
        providers: list[Path] = []
        parts: list[str] = []
        for path in sources:
            text = path.read_text(self.encoding)
            symbols = [s for s in self.provide if references(text, s)]
            for symbol in symbols:
                provider = self.context['source_dir'] / self.provide[symbol].source
                if provider not in providers:
                    providers.append(provider)
            parts.append(self.wrap(text, symbols) if symbols else text)

        preamble = [p.read_text(self.encoding) for p in providers]
        return '\n;\n'.join(preamble + parts)

    def minify(self, script: str) -> str:
        import minify
        return minify.string(self.mimetype, script)

    def __call__(self):
        try:
            script = self.minify(self.bundle(self.find_sources()))
            self.write_output(self.context['source_dir'] / self.output, script)
        except Exception as e:  # pylint: disable=broad-exception-caught
            print_with_style(f"'{self.name}' failed: {e}", file='stderr', style='red')
            return
        self.context.notify('reload')
