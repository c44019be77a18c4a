r"""
argtree argument descriptors and accessor cells.

Overview
- ArgumentKind: the tag of a descriptor. It fixes the arity (0 for flags,
  1 for value-consuming kinds), the uniqueness policy (only lists repeat),
  and the zero value of the accessor cell.
    • FLAG      -> bool, presence-only
    • STRING    -> str, one value
    • FILE      -> file object opened from the value, or None
    • LIST      -> list[str], one value per occurrence
    • SELECTOR  -> str, one value from a fixed domain
    • HELP      -> built-in -h/--help of every command scope
- Argument: immutable-after-declaration definition of one argument.
- Cell: the accessor handed back at declaration time. The parse engine is its
  only writer; callers read .value after parsing.
- openfile(): default "open this path with these flags/permissions" capability
  used for FILE arguments.

Validation highlights
- short names are "" or a single letter/digit ("v" is matched as -v).
- long names are required and must match r"[^\W\d_](-?[^\W_]+)*"
  ("dry-run" is matched as --dry-run). Unicode letters are allowed.
- help strings are trimmed; empty strings are rejected.
- choices are SELECTOR-only, non-empty, strings, without duplicates.
- flags/mode/binary/encoding are FILE-only.
- overwrite is rejected for LIST arguments (they always append).

Quick example:
    >>> verbose = Argument(ArgumentKind.FLAG, "v", "verbose", help="talk more")
    >>> verbose.names
    ('-v', '--verbose')
    >>> verbose.cell.value
    False
"""
import functools
import operator
import os
import re
from collections.abc import Iterable
from enum import Enum

from .utils import *


class ArgumentKind(Enum):
    FLAG = "flag"
    STRING = "string"
    FILE = "file"
    LIST = "list"
    SELECTOR = "selector"
    HELP = "help"

    @property
    def arity(self):
        """
        number of tokens consumed after the argument name.
        """
        return 0 if self in (ArgumentKind.FLAG, ArgumentKind.HELP) else 1

    @property
    def repeatable(self):
        return self is ArgumentKind.LIST

    @property
    def zero(self):
        """
        fresh zero value for a cell of this kind.
        """
        match self:
            case ArgumentKind.FLAG | ArgumentKind.HELP:
                return False
            case ArgumentKind.STRING | ArgumentKind.SELECTOR:
                return ""
            case ArgumentKind.LIST:
                return []
            case ArgumentKind.FILE:
                return None


class ArgumentType(type):
    """
    Metaclass exposing __introspectable__ fields as read-only properties.

    Also provides a stable __repr__ and a __rich_repr__ (restricted to
    __displayable__ when set) so descriptors pretty-print in diagnostics.
    """
    __introspectable__ = ()
    __displayable__ = Unset

    def __new__(cls, name, bases, namespace, **options):
        self = super().__new__(
            cls,
            name,
            bases,
            namespace | {
                "__typename__": re.sub(r"(?<!^)(?=[A-Z])", r"-", name).lower(),
            } | {
                name: mirror(name) for name in namespace.get("__introspectable__", ())
            },
        )

        @rename("__repr__")
        def __repr__(self):
            return f"{type(self).__typename__}({', '.join(map(functools.partial(operator.mod, '%s=%r'), self.__rich_repr__()))})"
        self.__repr__ = __repr__

        @rename("__rich_repr__")
        def __rich_repr__(self):
            for name in coalesce(type(self).__displayable__, type(self).__introspectable__):
                yield name, getattr(self, name)
        self.__rich_repr__ = __rich_repr__

        return self


class Cell(metaclass=ArgumentType):
    """
    Output location of one argument, returned to the caller at declaration time.

    Contract
    - Starts at the zero value of its kind (False, "", [], or None).
    - Written only by the parse engine, during a successful match.
    - Read by the caller after Parser.parse returns (or raises: cells matched
      before a fault keep their values).
    - .value on a list cell is a copy; mutating it does not affect the cell.
    """
    __introspectable__ = ("kind", "value", "matched")
    __displayable__ = ("value", "matched")

    def __init__(self, kind, /):
        if not isinstance(kind, ArgumentKind):
            raise TypeError("cell 'kind' must be an argument kind")
        self._kind = kind
        self._reset()

    def _reset(self):
        self._value = self._kind.zero
        self._matched = False

    def _store(self, value):
        self._value = value
        self._matched = True

    def _append(self, value):
        self._value.append(value)
        self._matched = True

    def __bool__(self):
        return bool(self._value)

    def __str__(self):
        return str(self._value)

    def __len__(self):
        return len(self._value)

    def __iter__(self):
        return iter(self.value)


def _sanitize_metadata(cls, metadata, /):
    """
    Internal: validate shared fields (kind, required, help, deprecated, validator).

    Mutates metadata in place: help becomes None when Unset, validator becomes
    None when Unset.
    """
    if not isinstance(metadata["kind"], ArgumentKind):
        raise TypeError(f"{cls.__typename__} 'kind' must be an argument kind")

    if not isinstance(help := metadata["help"], str | Unset):
        raise TypeError(f"{cls.__typename__} 'help' must be a string")
    elif isinstance(help, str) and not (help := help.strip()):
        raise ValueError(f"{cls.__typename__} 'help' cannot be empty")
    metadata["help"] = coalesce(help)

    if (validator := metadata["validator"]) is not Unset and not callable(validator):
        raise TypeError(f"{cls.__typename__} 'validator' must be callable")
    metadata["validator"] = coalesce(validator)


def _sanitize_named_metadata(cls, metadata, /):
    r"""
    Internal: validate short and long names.

    - short: "" or exactly one letter/digit.
    - long: required, r"[^\W\d_](-?[^\W_]+)*" (segments joined by single hyphens,
      starting with a letter, no underscores). Leading dashes are not part of
      the name; they belong to the token form (--long, -s).
    """
    if not isinstance(short := metadata["short"], str):
        raise TypeError(f"{cls.__typename__} short name must be a string")
    elif short and not re.fullmatch(r"[^\W_]", short):
        raise ValueError(f"{cls.__typename__} short name must be empty or a single letter or digit")

    if not isinstance(long := metadata["long"], str):
        raise TypeError(f"{cls.__typename__} long name must be a string")
    elif not long:
        raise ValueError(f"{cls.__typename__} long name cannot be empty")
    elif not re.fullmatch(r"[^\W\d_](-?[^\W_]+)*", long):
        raise ValueError(f"{cls.__typename__} long name must be a valid shell-style name without dashes prefix (unicodes are allowed)")


def _sanitize_kind_metadata(cls, metadata, /):
    """
    Internal: validate fields that only apply to some kinds.

    Mutates metadata in place: choices become a tuple, encoding becomes None
    when Unset.
    """
    kind = metadata["kind"]

    if not isinstance(choices := metadata["choices"], Iterable) or isinstance(choices, str):
        raise TypeError(f"{cls.__typename__} 'choices' must be an iterable of strings")
    sanitized = []
    for choice in choices:
        if not isinstance(choice, str):
            raise TypeError(f"{cls.__typename__} 'choices' must be an iterable of strings")
        if choice in sanitized:
            raise ValueError(f"{cls.__typename__} 'choices' cannot contain duplicates")
        sanitized.append(choice)
    if kind is ArgumentKind.SELECTOR and not sanitized:
        raise ValueError(f"selector {cls.__typename__} must specify at least one choice")
    if kind is not ArgumentKind.SELECTOR and sanitized:
        raise TypeError(f"{kind.value} {cls.__typename__} cannot specify 'choices'")
    metadata["choices"] = tuple(sanitized)

    if not isinstance(metadata["flags"], int) or isinstance(metadata["flags"], bool):
        raise TypeError(f"{cls.__typename__} 'flags' must be an integer")
    if not isinstance(metadata["mode"], int) or isinstance(metadata["mode"], bool):
        raise TypeError(f"{cls.__typename__} 'mode' must be an integer")
    if not isinstance(encoding := metadata["encoding"], str | Unset):
        raise TypeError(f"{cls.__typename__} 'encoding' must be a string")
    if kind is not ArgumentKind.FILE and (
        metadata["flags"] != os.O_RDONLY or metadata["mode"] != 0o666 or metadata["binary"] or encoding
    ):
        raise TypeError(f"{kind.value} {cls.__typename__} cannot specify file parameters")
    if metadata["binary"] and encoding:
        raise TypeError(f"binary {cls.__typename__} cannot specify an 'encoding'")
    metadata["encoding"] = coalesce(encoding)

    if kind.repeatable and metadata["overwrite"]:
        raise TypeError(f"{kind.value} {cls.__typename__} cannot specify 'overwrite'")


class Argument(metaclass=ArgumentType):
    """
    Declared definition of one command-line argument.

    Instances are created by the command builder (Command.flag/string/file/
    list/selector) and stay immutable afterwards; only their cell and the
    matched marker change, and only during parsing.

    Properties
    - The names listed in __introspectable__ are read-only attributes.
    - arity/repeatable delegate to the kind.
    - names: the token forms accepted on the command line, short first.
    """

    __introspectable__ = (
        "kind",
        "short",
        "long",
        "required",
        "validator",
        "choices",
        "flags",
        "mode",
        "binary",
        "encoding",
        "overwrite",
        "help",
        "deprecated",
        "cell",
        "matched",
    )

    __displayable__ = (
        "kind",
        "short",
        "long",
        "required",
        "choices",
        "help",
    )

    def __init__(
            self,
            kind,
            short,
            long,
            /,
            *,
            required=False,
            validator=Unset,
            choices=(),
            flags=os.O_RDONLY,
            mode=0o666,
            binary=False,
            encoding=Unset,
            overwrite=False,
            help=Unset,
            deprecated=False,
    ):
        metadata = {
            "kind": kind,
            "short": short,
            "long": long,
            "required": bool(required),
            "validator": validator,
            "choices": choices,
            "flags": flags,
            "mode": mode,
            "binary": bool(binary),
            "encoding": encoding,
            "overwrite": bool(overwrite),
            "help": help,
            "deprecated": bool(deprecated),
        }
        _sanitize_metadata(type(self), metadata)
        _sanitize_named_metadata(type(self), metadata)
        _sanitize_kind_metadata(type(self), metadata)

        for name, object in metadata.items():
            setattr(self, "_" + name, object)

        self._cell = Cell(kind)
        self._matched = False

    @property
    def arity(self):
        return self._kind.arity

    @property
    def repeatable(self):
        return self._kind.repeatable

    @property
    def names(self):
        if self._short:
            return "-" + self._short, "--" + self._long
        return ("--" + self._long,)

    def _reset(self):
        self._cell._reset()
        self._matched = False


def _fdmode(flags, binary):
    """
    Translate os.open flags into the matching io mode string.
    """
    access = flags & (os.O_WRONLY | os.O_RDWR)
    append = flags & os.O_APPEND
    if access == os.O_WRONLY:
        mode = "a" if append else "w"
    elif access == os.O_RDWR:
        mode = "a+" if append else "r+"
    else:
        mode = "r"
    return mode + "b" * binary


def openfile(path, flags=os.O_RDONLY, mode=0o666, /, *, binary=False, encoding=None):
    """
    Open path with os.open flags and permission bits, returning a file object.

    The descriptor is wrapped with os.fdopen in text mode (or binary mode when
    binary=True). OSError propagates to the caller unchanged; the parse engine
    wraps it into a ResourceOpenError.
    """
    descriptor = os.open(path, flags, mode)
    try:
        return os.fdopen(descriptor, _fdmode(flags, binary), encoding=None if binary else encoding)
    except BaseException:
        os.close(descriptor)
        raise


__all__ = (
    "ArgumentKind",
    "Argument",
    "Cell",
    "openfile",
)

# Remove the internal metaclass from the module namespace; commands re-declare
# their own flavour.
del ArgumentType
