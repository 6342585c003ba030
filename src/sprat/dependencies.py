from __future__ import annotations

import abc
import importlib
import shutil


class Dependency(abc.ABC):
    """
    A base class for trackable, evaluable, composable task dependencies.
    """
    def __init__(self,
                 name: str,
                 source: str | None = None,
                 check_name: str | None = None):
        self.name = name
        self.source = source or name
        self.check_name = check_name or name

    def __str__(self):
        return self.name

    def __repr__(self):
        return f'{self.__class__.__name__}({self}, satisfied={self.satisfied})'

    def __eq__(self, other: object):
        if not isinstance(other, Dependency):
            return NotImplemented
        return (type(self), self.name, self.check_name) == (type(other), other.name, other.check_name)

    def __hash__(self):
        return hash((type(self), self.name, self.check_name))

    @property
    @abc.abstractmethod
    def satisfied(self) -> bool:
        """
        A bool indicating whether this dependency is met.
        """

    @property
    @abc.abstractmethod
    def install_hint(self) -> str:
        """
        A string giving help on how to install this dependency.
        """


class PipDependency(Dependency):
    """
    A Dependency on a pip-installable package, checked by importing
    @check_name.
    """
    @property
    def satisfied(self):
        try:
            importlib.import_module(self.check_name)
        except ImportError:
            return False
        return True

    @property
    def install_hint(self):
        return f'pip install {self.source}'


class WebExecDependency(Dependency):
    """
    A Dependency on an executable found on PATH as @check_name, installed from
    the web page or package named by @source.
    """
    @property
    def satisfied(self):
        return bool(shutil.which(self.check_name))

    @property
    def install_hint(self):
        return self.source
