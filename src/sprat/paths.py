"""
Glob-based Matchers for selecting files relative to a context directory.
"""
import re
from pathlib import Path

from .core import Context, ContextDir, Matcher


# A wildcard at the start of a path segment never matches a leading dot.
_NO_DOT = r'(?!\.)'


def glob_to_regex(pattern: str) -> str:
    """
    Translate a glob into a regular expression matching whole POSIX relative
    paths. Supports `*`, `?`, `**` (any number of directories) and
    comma-separated `{a,b}` alternatives.
    """
    out: list[str] = []
    depth = 0
    i = 0
    n = len(pattern)
    while i < n:
        char = pattern[i]
        segment_start = i == 0 or pattern[i - 1] == '/' or (depth > 0 and pattern[i - 1] in '{,')
        if pattern.startswith('**', i) and segment_start:
            if pattern.startswith('**/', i):
                out.append(rf'(?:{_NO_DOT}[^/]*/)*')
                i += 3
            else:
                out.append(rf'{_NO_DOT}[^/]*(?:/{_NO_DOT}[^/]*)*')
                i += 2
            continue
        if char == '*':
            out.append((_NO_DOT if segment_start else '') + '[^/]*')
        elif char == '?':
            out.append((_NO_DOT if segment_start else '') + '[^/]')
        elif char == '{':
            depth += 1
            out.append('(?:')
        elif char == '}' and depth:
            depth -= 1
            out.append(')')
        elif char == ',' and depth:
            out.append('|')
        else:
            out.append(re.escape(char))
        i += 1
    return ''.join(out) + r'\Z'


class GlobMatcher(Matcher[bool]):
    """
    Path Matcher using a glob relative to one of the Context's directories.
    Paths outside of @parent_dir never match.
    """
    def __init__(self, pattern: str, parent_dir: ContextDir = 'source_dir'):
        self.pattern = pattern
        self.regex = re.compile(glob_to_regex(pattern))
        self.parent_dir: ContextDir = parent_dir

    def __repr__(self):
        return f'GlobMatcher({self.pattern!r}, {self.parent_dir!r})'

    def __call__(self, context: Context, path: Path):
        parent = context[self.parent_dir]
        if not path.is_relative_to(parent):
            return False
        return bool(self.regex.match(path.relative_to(parent).as_posix()))


def glob(*patterns: str, parent_dir: ContextDir = 'source_dir') -> Matcher[bool]:
    """
    Combine @patterns the way gulp source lists do: a path matches when any
    plain pattern matches and no `!`-prefixed pattern does.
    """
    include: Matcher[bool] | None = None
    exclude: Matcher[bool] | None = None
    for pattern in patterns:
        if pattern.startswith('!'):
            matcher = GlobMatcher(pattern[1:], parent_dir)
            exclude = matcher if exclude is None else exclude | matcher
        else:
            matcher = GlobMatcher(pattern, parent_dir)
            include = matcher if include is None else include | matcher
    if include is None:
        raise ValueError('At least one non-negated pattern is required!')
    return include & ~exclude if exclude is not None else include
