"""
Internal utilities for progress bars and pretty printing.
"""
import typing as t

import rich.console
import rich.progress


T = t.TypeVar('T')

_consoles = {
    'stdout': rich.console.Console(highlight=False),
    'stderr': rich.console.Console(stderr=True, highlight=False),
}


def track_progress(iterable: t.Iterable[T], desc: str) -> t.Iterable[T]:
    """
    Progress tracker for long file loops, shown only on interactive terminals.
    """
    console = _consoles['stdout']
    if not console.is_terminal:
        yield from iterable
        return
    yield from rich.progress.track(iterable, desc, console=console, transient=True)


def print_with_style(*args, sep=' ', end='\n', file: str = 'stdout', style=None):
    """
    Enhanced print() function using rich console styles. Markup in @args is
    not interpreted, so paths and compiler messages print verbatim.
    """
    _consoles[file].print(*args, sep=sep, end=end, style=style, markup=False)
