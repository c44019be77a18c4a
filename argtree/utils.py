"""
argtree utilities (internal helpers shared by the grammar and the parser)

Overview
- UnsetType / Unset
  • Singleton sentinel meaning “not provided”, distinct from None.
  • Falsey, printable as "Unset", and non-subclassable.

- coalesce(value, default=None)
  • Replace Unset with a default while keeping None/0/""/[] untouched.

- @rename("name")
  • Stable __name__/__qualname__ for callables built inside metaclasses.

- mirror("attr")
  • Read-only property exposing self._attr; containers are handed out as
    fresh copies so the caller never mutates parser-owned state.

Quick examples
    >>> coalesce(Unset, "fallback")
    'fallback'
    >>> coalesce(None, "fallback") is None
    True
"""
import functools
from collections.abc import Sequence, Mapping, Set
from types import MappingProxyType
from typing import final


@final
class UnsetType:
    """
    Sentinel type for parameters that were not provided.

    None is a legitimate value for several declaration parameters (a help text
    may be omitted, a validator may be absent), so the builder needs a marker
    that cannot be confused with a user value.
    """

    def __or__(self, other, /):
        """
        Support PEP 604 unions in isinstance checks (e.g., str | Unset).
        """
        try:
            return other | type(self)
        except TypeError:
            return NotImplemented

    def __ror__(self, other, /):
        try:
            return other | type(self)
        except TypeError:
            return NotImplemented

    @functools.cache
    def __new__(cls):
        return super().__new__(cls)

    def __bool__(self):
        return False

    def __repr__(self):
        return "Unset"

    def __init_subclass__(cls, **options):
        raise TypeError("UnsetType cannot be subclassed")


def coalesce(object, default=None, /):
    """
    Return object unless it is Unset, in which case return default.

    Falsey values (None, 0, "", []) are preserved; only the sentinel is replaced.
    """
    return object if object is not Unset else default


def rename(name, /):
    """
    Decorator giving generated callables (metaclass __repr__ and friends) a
    readable __name__ and __qualname__.
    """
    if not isinstance(name, str):
        raise TypeError("rename() argument must be a string")

    def decorator(function):
        if not callable(function):
            raise TypeError("rename() must decorate a callable")
        function.__name__ = function.__qualname__ = name
        return function

    return decorator


def _immortalize(object):
    """
    Copy containers so callers receive snapshots instead of live state.

    - list/tuple (non-string sequences) -> tuple when the source is a tuple,
      list otherwise (list cells stay lists for the caller)
    - mappings -> read-only MappingProxyType over a fresh dict
    - sets -> frozenset
    - anything else (strings, bools, file objects, commands) -> as-is
    """
    if isinstance(object, tuple):
        return object
    if isinstance(object, Sequence) and not isinstance(object, str | bytes):
        return list(object)
    elif isinstance(object, Mapping):
        return MappingProxyType(dict(object))
    elif isinstance(object, Set):
        return frozenset(object)
    return object


def mirror(name, /):
    """
    Define a read-only property backed by the private attribute "_{name}".

    Example
        class Node:
            children = mirror("children")  # reads self._children
    """
    if not isinstance(name, str):
        raise TypeError("mirror() argument must be a string")

    @rename(name)
    def getter(self):
        return _immortalize(getattr(self, "_" + name))

    return property(getter)


Unset = UnsetType()
"""
Internal sentinel for “not provided”.

Distinct from None, falsey, and a singleton: UnsetType() is Unset.
"""


__all__ = (
    # Functions
    "coalesce",
    "rename",
    "mirror",

    # Types
    "UnsetType",

    # Constants
    "Unset",
)
