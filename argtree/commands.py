"""
argtree command layer: declare a command tree, then parse tokens into it.

What this module provides
- Command: one scope of the grammar tree. It owns its argument descriptors
  and its child commands, keeps a non-owning reference to its parent, and
  records whether it was reached by the last parse.
  • Builder: command(), flag(), string(), file(), list(), selector().
  • Matcher: decides what a token means at this scope.
  • Parse engine: recursive scan of a shared token buffer.
  • Usage formatter: usage() / help().
- Parser: the top-level scope. parse() runs the engine and reports leftovers;
  run() is the shell-style entry point (print fault + usage, exit).
- invoke(parser, tokens): convenience runner mirroring Parser.run.

Quick start
    from argtree import Parser

    parser = Parser("tool", "manage things")
    verbose = parser.flag("v", "verbose", help="talk more")
    remote = parser.command("remote", "manage remotes")
    add = remote.command("add", "add a remote")
    name = add.string("n", "name", required=True)
    tags = add.list("t", "tag")

    parser.parse(["remote", "add", "-v", "--name", "origin", "-t", "a", "-t", "b"])
    assert add.happened() and verbose.value and name.value == "origin"
    assert tags.value == ["a", "b"]

Matching rules (per token, first rule that applies wins, no backtracking)
1. the token equals a child command name -> descend into that child.
2. "--long" or "-s" names a descriptor visible at this scope: declared here or
   on an ancestor, innermost scope first; the scope's -h/--help comes last.
3. "-abc" where every letter names a visible flag -> all of them match.
4. otherwise the token is left in the buffer (reported as too many arguments
   at the top level if nobody claims it).

Design notes
- Consumed positions in the shared buffer are set to None; a child scans
  only the positions after its own name.
- Faults are raised immediately (fail-fast); cells written before a fault
  keep their values and opened files stay open (the caller owns them).
- Visible names are unique per scope; this is enforced at declaration time
  against ancestors and descendants, so resolution never depends on order.
"""
import functools
import operator
import os.path
import re
import shlex
import sys
from collections.abc import Iterable

from rich.console import Console
from rich.text import Text

from .arguments import Argument, ArgumentKind, openfile
from .faults import *
from .utils import *

WIDTH = 100
"""
maximum line width of the usage text.
"""

_console = Console(width=WIDTH, color_system=None)


class CommandType(type):
    """
    Metaclass exposing __introspectable__ fields as read-only properties and
    giving commands a compact __repr__/__rich_repr__.
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
                value = getattr(self, name)
                # parents are shown by name to keep the output finite
                yield name, value.name if isinstance(value, Command) else value
        self.__rich_repr__ = __rich_repr__

        return self


def _sanitize_metadata(cls, metadata, /):
    """
    Internal: validate the command name and description.

    - name: non-empty string without whitespace that does not start with '-'
      (it would be mistaken for an argument).
    - descr: Unset or a string; trimmed, Unset becomes "".
    """
    if not isinstance(name := metadata["name"], str):
        raise TypeError(f"{cls.__typename__} 'name' must be a string")
    elif not (name := name.strip()):
        raise ValueError(f"{cls.__typename__} 'name' cannot be empty")
    elif not re.fullmatch(r"[^\s-]\S*", name):
        raise ValueError(f"{cls.__typename__} 'name' cannot contain whitespaces or start with '-'")
    metadata["name"] = name

    if not isinstance(descr := metadata["descr"], str | Unset):
        raise TypeError(f"{cls.__typename__} 'descr' must be a string")
    metadata["descr"] = coalesce(descr, "").strip()


def _attach_to_parent(self, parent):
    """
    Register this command under its parent, enforcing unique sibling names.
    """
    if parent is None:
        return
    if parent._children.setdefault(self.name, self) is self:
        return
    typeof = "subcommand" if parent.parent else "command"
    raise ValueError(f"{type(self).__typename__} {typeof} name {self.name!r} is already in use")


def _check_collisions(self, argument):
    """
    Reject an argument whose names are already visible from some scope.

    A descriptor declared on self is visible from self and every descendant,
    so it must not clash with anything declared on an ancestor, on self, or
    below self.
    """
    scopes = list(self.path[:-1]) + list(self._walk())
    for scope in scopes:
        for existing in scope._arguments:
            if existing.long == argument.long:
                raise ValueError(f"argument name '--{argument.long}' is already in use by {scope.route!r}")
            if argument.short and existing.short == argument.short:
                raise ValueError(f"argument name '-{argument.short}' is already in use by {scope.route!r}")


def _progname():
    """
    Program name derived from sys.argv[0] ('python -m tool' and '-c' included).
    """
    words = os.path.basename(sys.argv[0] if sys.argv else "").split()
    return words[0].lstrip("-") if words and words[0].lstrip("-") else "prog"


def _tokenize(tokens):
    """
    Normalize the parse input into a fresh list of tokens.

    - Unset: sys.argv[1:]
    - str: shell-like string split with shlex.split
    - Iterable[str]: copied; the caller's sequence is never modified
    """
    if tokens is Unset:
        return sys.argv[1:]
    if isinstance(tokens, str):
        return shlex.split(tokens)
    if isinstance(tokens, Iterable):
        buffer = list(tokens)
        for token in buffer:
            if not isinstance(token, str):
                raise TypeError("parse() argument must be a string or an iterable of strings")
        return buffer
    raise TypeError("parse() argument must be a string or an iterable of strings")


class Command(metaclass=CommandType):
    """
    One scope of the grammar tree: the top-level parser or a (sub)command.

    Ownership
    - children and arguments are owned by this node, in declaration order,
      and are never removed.
    - parent is a back reference used for ancestor argument visibility and
      for the usage chain; it does not own anything.

    State
    - happened(): True when the last parse reached this scope.
    - each argument's cell holds what the last parse wrote.

    Create children with command(); do not instantiate Command with a parent
    directly unless you are building the tree by hand.
    """

    __introspectable__ = (
        "name",
        "descr",
        "parent",
        "children",
        "helper",
    )

    __displayable__ = (
        "name",
        "descr",
        "parent",
        "children",
        "arguments",
    )

    def __init__(self, name, descr=Unset, /, parent=None):
        if not isinstance(parent, Command | None):
            raise TypeError(f"{type(self).__typename__} 'parent' must be a command")

        metadata = {
            "name": name,
            "descr": descr,
        }
        _sanitize_metadata(type(self), metadata)

        self._name = metadata["name"]
        self._descr = metadata["descr"]
        self._parent = parent
        self._children = {}
        self._arguments = []
        self._reached = False
        # every scope answers -h/--help with its own usage
        self._helper = Argument(ArgumentKind.HELP, "h", "help", help="show this help message and exit")

        _attach_to_parent(self, parent)

    @property
    def arguments(self):
        """
        Own argument descriptors, in declaration order.
        """
        return tuple(self._arguments)

    @property
    def root(self):
        """
        Return the topmost command of the hierarchy.
        """
        child, parent = self, self.parent
        while parent:
            child, parent = parent, parent.parent
        return child

    @property
    def path(self):
        """
        Return the ancestry from the root to this command as a tuple.
        """
        path = [command := self]
        while command.parent:
            path.append(command := command.parent)
        return tuple(reversed(path))

    @property
    def route(self):
        """
        Command chain as typed on the command line (e.g., 'tool remote add').
        """
        return " ".join(step.name for step in self.path)

    def happened(self):
        """
        Whether the last parse reached this command.

        The root is reached by every parse; a sub-command is reached when its
        name was matched. Descendants of a command that was not reached are
        never parsed, so their cells keep their zero values.
        """
        return self._reached

    def _walk(self):
        """
        Yield this command and all of its descendants, depth-first.
        """
        yield self
        for child in self._children.values():
            yield from child._walk()

    def _reset(self):
        for command in self._walk():
            command._reached = False
            command._helper._reset()
            for argument in command._arguments:
                argument._reset()

    # ── Builder ───────────────────────────────────────────────────────────────

    def command(self, name, descr=Unset, /):
        """
        Declare a sub-command of this command and return it.

        A command with sub-commands requires one of them on the command line.
        """
        return Command(name, descr, parent=self)

    def _declare(self, kind, short, long, /, **options):
        argument = Argument(kind, short, long, **options)
        _check_collisions(self, argument)
        self._arguments.append(argument)
        return argument.cell

    def flag(self, short, long, /, *, required=False, validator=Unset, help=Unset, overwrite=False, deprecated=False):
        """
        Declare a presence-only argument; the cell becomes True when given.

        Short flags can be combined in a single token ('-rf').
        """
        return self._declare(
            ArgumentKind.FLAG, short, long,
            required=required, validator=validator, help=help, overwrite=overwrite, deprecated=deprecated,
        )

    def string(self, short, long, /, *, required=False, validator=Unset, help=Unset, overwrite=False, deprecated=False):
        """
        Declare an argument taking the following token as its value.
        """
        return self._declare(
            ArgumentKind.STRING, short, long,
            required=required, validator=validator, help=help, overwrite=overwrite, deprecated=deprecated,
        )

    def file(
            self,
            short,
            long,
            flags=os.O_RDONLY,
            mode=0o666,
            /,
            *,
            binary=False,
            encoding=Unset,
            required=False,
            validator=Unset,
            help=Unset,
            overwrite=False,
            deprecated=False
    ):
        """
        Declare an argument whose value is a path opened while parsing.

        flags and mode are handed to os.open (e.g., os.O_WRONLY | os.O_CREAT,
        0o644). The cell holds the opened file object; closing it is the
        caller's job, including when a later argument makes the parse fail.
        """
        return self._declare(
            ArgumentKind.FILE, short, long,
            flags=flags, mode=mode, binary=binary, encoding=encoding,
            required=required, validator=validator, help=help, overwrite=overwrite, deprecated=deprecated,
        )

    def list(self, short, long, /, *, required=False, validator=Unset, help=Unset, deprecated=False):
        """
        Declare a repeatable argument; every occurrence appends its value.
        """
        return self._declare(
            ArgumentKind.LIST, short, long,
            required=required, validator=validator, help=help, deprecated=deprecated,
        )

    def selector(self, short, long, choices, /, *, required=False, validator=Unset, help=Unset, overwrite=False, deprecated=False):
        """
        Declare an argument whose value must be one of choices.
        """
        return self._declare(
            ArgumentKind.SELECTOR, short, long,
            choices=choices, required=required, validator=validator, help=help, overwrite=overwrite, deprecated=deprecated,
        )

    # ── Matcher ───────────────────────────────────────────────────────────────

    def _visible(self):
        """
        Yield the descriptors visible from this scope, innermost scope first.
        """
        command = self
        while command:
            yield from command._arguments
            command = command.parent

    def _lookup(self, *, short=Unset, long=Unset):
        for argument in self._visible():
            if argument.long == long or (short and argument.short == short):
                return argument
        if self._helper.long == long or self._helper.short == short:
            return self._helper
        return None

    def _resolve(self, token):
        """
        Map an argument-looking token to the descriptor(s) it names, or None.
        """
        if token.startswith("--"):
            argument = self._lookup(long=token[2:])
            return [argument] if argument else None

        if not token.startswith("-") or len(token) < 2:
            return None

        if len(token) == 2:
            argument = self._lookup(short=token[1])
            return [argument] if argument else None

        # combined short flags: every letter must be a flag
        arguments = []
        for letter in token[1:]:
            argument = self._lookup(short=letter)
            if argument is None or argument.arity:
                return None
            arguments.append(argument)
        return arguments

    def _match(self, token):
        """
        Classify token at this scope.

        Returns ("command", child), ("argument", [descriptors]) or None.
        """
        if token in self._children:
            return "command", self._children[token]
        if arguments := self._resolve(token):
            return "argument", arguments
        return None

    # ── Parse engine ──────────────────────────────────────────────────────────

    def _consume(self, argument, buffer, index):
        """
        Apply one matched descriptor whose name sits at buffer[index].

        Returns the index of the last token consumed.
        """
        if argument.kind is ArgumentKind.HELP:
            raise HelpRequested(self)

        if argument.matched and not argument.repeatable and not argument.overwrite:
            raise DuplicatedArgumentError(self, argument.long)

        values = []
        if argument.arity:
            if index + 1 >= len(buffer) or buffer[index + 1] is None:
                raise MissingValueError(self, argument.long)
            values.append(buffer[index + 1])
            buffer[index + 1] = None
            index += 1

        if argument.deprecated:
            trigger(DeprecatedArgumentWarning(self, argument.long))

        if argument.validator:
            # the caller's own exception travels back untouched
            if isinstance(error := argument.validator(*values), BaseException):
                raise error

        cell = argument.cell
        match argument.kind:
            case ArgumentKind.FLAG:
                cell._store(True)
            case ArgumentKind.STRING:
                cell._store(values[0])
            case ArgumentKind.SELECTOR:
                if values[0] not in argument.choices:
                    raise InvalidChoiceError(self, argument.long, values[0], argument.choices)
                cell._store(values[0])
            case ArgumentKind.LIST:
                cell._append(values[0])
            case ArgumentKind.FILE:
                opener = getattr(self.root, "opener", openfile)
                try:
                    handle = opener(values[0], argument.flags, argument.mode, binary=argument.binary, encoding=argument.encoding)
                except OSError as exception:
                    raise ResourceOpenError(self, argument.long, values[0], exception) from exception
                cell._store(handle)

        argument._matched = True
        return index

    def _parse(self, buffer, start=0):
        """
        Parse this scope against the shared buffer, from position start on.

        Tokens before start belong to outer scopes: a child only sees what
        follows its own name.

        states: scanning -> (descending) -> checking invariants -> done.
        Faults raised by a child propagate unchanged.
        """
        self._reached = True

        child = None
        index = start
        while index < len(buffer):
            if (token := buffer[index]) is None:
                index += 1
                continue

            match self._match(token):
                case "command", command:
                    buffer[index] = None
                    child = command
                    child._parse(buffer, index + 1)
                    break
                case "argument", arguments:
                    buffer[index] = None
                    for argument in arguments:
                        index = self._consume(argument, buffer, index)
            index += 1

        for argument in self._arguments:
            if argument.required and not argument.matched:
                raise MissingArgumentError(self, argument.long)

        if self._children and child is None:
            raise MissingCommandError(self)

    # ── Usage formatter ───────────────────────────────────────────────────────

    def usage(self, fault=None):
        """
        Return the usage text of this command.

        When fault is a MissingCommandError, the text of the command it refers
        to is returned instead, so that a caller asking the root for help after
        'tool remote' failed gets the usage of 'remote'.

        Layout (wrapped at WIDTH columns)
        - "usage:" + command chain + "<command>" (if any children) + argument forms
        - description
        - "Commands:" children with descriptions
        - "Arguments:" -h/--help, own arguments, then ancestors' arguments
        """
        if isinstance(fault, MissingCommandError) and fault.command is not None and fault.command is not self:
            return fault.command.usage()

        arguments = list(self._visible())

        # usage line, wrapped with a hanging indent after the program name
        head = "usage: " + self.path[0].name
        offset = len(head) + 1
        items = [step.name for step in self.path[1:]]
        if self._children:
            items.append("<command>")
        items.extend(_fragment(argument) for argument in [self._helper, *arguments])

        lines = [Text(head)]
        for item in items:
            if len(lines[-1]) + 1 + len(item) > WIDTH:
                lines.append(Text(" " * offset + item))
            else:
                lines[-1].append(" " + item)
        result = "\n".join(line.plain for line in lines) + "\n\n"

        if self.descr:
            result += _hanging("", self.descr, offset) + "\n\n"

        if self._children:
            padding = max(len("   " + name + "   ") for name in self._children)
            result += "Commands:\n\n"
            for name, child in self._children.items():
                result += _hanging(("   " + name).ljust(padding), child.descr, padding) + "\n"
            result += "\n"

        padding = max(len(argument.long) + 13 for argument in [self._helper, *arguments])
        result += "Arguments:\n\n"
        for argument in [self._helper, *arguments]:
            prefix = "   " + ("-" + argument.short + "   " if argument.short else "     ") + "--" + argument.long
            result += _hanging(prefix.ljust(padding), argument.help or "", padding) + "\n"

        return result

    def help(self, fault=None, /, *, stderr=Unset):
        """
        Print usage(fault) through a rich console.

        Output goes to stderr when a fault is given, stdout otherwise, unless
        stderr says otherwise.
        """
        Console(stderr=coalesce(stderr, fault is not None)).print(Text(self.usage(fault)), soft_wrap=True, end="")


def _fragment(argument):
    """
    Usage form of one argument: '[-s|--long "<value>"]', '--long (a|b)', ...
    """
    name = "-%s|--%s" % (argument.short, argument.long) if argument.short else "--" + argument.long
    match argument.kind:
        case ArgumentKind.STRING:
            result = name + ' "<value>"'
        case ArgumentKind.SELECTOR:
            result = name + " (" + "|".join(argument.choices) + ")"
        case ArgumentKind.FILE:
            result = name + " <file>"
        case ArgumentKind.LIST:
            result = name + ' "<value>" [' + name + ' "<value>" ...]'
        case _:
            result = name
    return result if argument.required else "[" + result + "]"


def _hanging(prefix, text, indent):
    """
    prefix followed by text wrapped to WIDTH, continuation lines indented.
    """
    if not text:
        return prefix.rstrip()
    wrapped = Text(text).wrap(_console, max(WIDTH - indent, 1))
    lines = [line.plain.rstrip() for line in wrapped]
    return (prefix.ljust(indent) + lines[0] + "".join("\n" + " " * indent + line for line in lines[1:])).rstrip()


class Parser(Command):
    """
    Top-level scope of a command tree.

    Options
    - name: program name (defaults to the basename of sys.argv[0]).
    - descr: description shown under the usage line.
    - opener: callable(path, flags, mode, *, binary, encoding) opening file
      arguments; defaults to argtree.arguments.openfile (os.open + os.fdopen).
    - shell: run() renders faults with rich and exits instead of raising.
    - fancy / colorful: panel and colors of rendered faults.

    Concurrency
    - a tree supports one parse at a time: cells and reached markers are
      shared mutable state. Build the tree first, then parse from one thread.
    """

    __introspectable__ = (
        "name",
        "descr",
        "parent",
        "children",
        "helper",
        "opener",
        "shell",
        "fancy",
        "colorful",
    )

    __displayable__ = (
        "name",
        "descr",
        "children",
        "arguments",
        "shell",
        "fancy",
        "colorful",
    )

    def __init__(self, name=Unset, descr=Unset, /, *, opener=Unset, shell=False, fancy=False, colorful=False):
        super().__init__(coalesce(name, _progname()), descr)
        if not callable(opener := coalesce(opener, openfile)):
            raise TypeError(f"{type(self).__typename__} 'opener' must be callable")
        self._opener = opener
        self._shell = bool(shell)
        self._fancy = bool(fancy)
        self._colorful = bool(colorful)

    def parse(self, tokens=Unset, /):
        """
        Parse tokens into the tree and return self.

        Parameters
        - tokens: Unset (sys.argv[1:]), a shell-like string, or an iterable of
          strings. The input is copied; the caller's sequence is not modified.

        Behavior
        - every cell and reached marker is reset first.
        - raises the first fault encountered (a CommandException subclass),
          HelpRequested when -h/--help was given, or the exception of a
          validator unchanged.
        - tokens nobody claimed raise UnparsedTokensError once the whole tree
          parsed successfully.
        """
        buffer = _tokenize(tokens)
        self._reset()
        self._parse(buffer)

        if leftover := [token for token in buffer if token is not None]:
            raise UnparsedTokensError(leftover, command=self)
        return self

    def run(self, tokens=Unset, /):
        """
        Shell-style entry point around parse().

        - help requested: print that command's usage and exit with status 0.
        - fault in shell mode: print the fault, then the usage of this parser
          for that fault (redirected to the failing scope for missing
          commands) on stderr, and exit with status 1.
        - fault outside shell mode: re-raised.
        """
        try:
            return self.parse(tokens)
        except HelpRequested as request:
            request.command.help()
            sys.exit(0)
        except CommandException as fault:
            if not self.shell:
                raise
            trigger(fault, deferred=True)
            self.help(fault, stderr=True)
            sys.exit(1)


def invoke(object, tokens=Unset, /):
    """
    Convenience runner: invoke(parser, tokens) is parser.run(tokens).
    """
    if hasattr(object, "run") and callable(object.run):
        return object.run(tokens)
    target = "argument" if tokens is Unset else "first argument"
    raise TypeError(f"invoke() {target} must be a parser")


__all__ = (
    "WIDTH",
    "Command",
    "Parser",
    "invoke",
)

# Remove the internal metaclass from the module namespace.
del CommandType
