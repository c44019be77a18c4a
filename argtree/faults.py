"""
argtree faults (errors and warnings) and rendering.

Scope
- FaultCode: stable numeric identifiers for every user-facing parse fault.
- CommandException: base type for parse faults. Each fault carries the command
  scope where it happened, a short title, a one-sentence message, and a hint.
- CommandWarning: non-fatal notices, emitted through the warnings module.
- HelpRequested: control-flow signal raised when -h/--help is matched.
- trigger(): surface a fault (raise it, or render it with rich in shell mode).
- getdoc(): optional description lookup for a code from the host application.

Host hooks (all optional, looked up on __main__)
- __prog__: program name shown in fault headers.
- __codes__: mapping FaultCode -> label overriding the numeric code.
- __docs__: mapping FaultCode -> documentation string.
- __styles__: mapping style-name -> rich style overriding the palette.
"""
import sys
import warnings
from collections import defaultdict
from enum import IntEnum

from rich.console import Console, Group
from rich.panel import Panel
from rich.text import Text

from .utils import Unset, coalesce

console = Console(stderr=True)


class FaultCode(IntEnum):
    """
    canonical fault codes (stable identifiers).

    grouping
    - routing (1110x): MISSING_COMMAND
    - arguments (1111x): MISSING_ARGUMENT, MISSING_VALUE, DUPLICATED_ARGUMENT,
      INVALID_CHOICE
    - leftovers (1114x): UNPARSED_TOKENS
    - resources (1115x): RESOURCE_OPEN
    - warnings (12xxx): DEPRECATED_ARGUMENT
    """
    # --- routing errors ---
    MISSING_COMMAND     = 11101

    # --- argument errors ---
    MISSING_ARGUMENT    = 11111
    MISSING_VALUE       = 11112
    DUPLICATED_ARGUMENT = 11113
    INVALID_CHOICE      = 11114

    # --- leftover input ---
    UNPARSED_TOKENS     = 11141

    # --- resource errors ---
    RESOURCE_OPEN       = 11151

    # --- warnings ---
    DEPRECATED_ARGUMENT = 12112

    def normalize(self):
        """
        return the host label for this code, or the numeric value as a string.
        """
        return str(getattr(__import__("__main__"), "__codes__", {}).get(self, self.value))


def _palette(defaults):
    return defaultdict(str, defaults | getattr(__import__("__main__"), "__styles__", {}))


def _render(fault, styles, options):
    """
    build the renderable shared by errors and warnings.

    layout
    - header: "[ prog — code | title ]"
    - body: the message, then " → hint"
    - fancy=True wraps everything in a panel titled with the header.
    """
    colorful = options.get("colorful", False)

    def text(fragment, style=""):
        if not fragment:
            return Text("")
        if not colorful:
            return Text(str(fragment))
        return Text(str(fragment), styles[style])

    command = fault.command
    prog = getattr(__import__("__main__"), "__prog__", command.root.name if command else "argtree")

    header = Text.assemble(
        "[ ",
        text(prog, "prog-name"),
        " — ",
        text(fault.code.normalize(), "code"),
        " | ",
        text(fault.title.title(), "title"),
        " ]"
    )
    message = text(fault.message, "message")
    hint = Text.assemble(text(" → ", "hint-arrow"), text(fault.hint, "hint"))

    if options.get("fancy", False):
        return Panel(Group(message, hint), title=header, title_align="left")
    return Group(header, message, hint)


def _options(fault, overrides):
    """
    merge the runtime flags of the fault's root command with explicit overrides.
    """
    root = fault.command.root if fault.command else None
    return {
        "shell": getattr(root, "shell", False),
        "fancy": getattr(root, "fancy", False),
        "colorful": getattr(root, "colorful", False),
        "deferred": False,
    } | overrides


class CommandException(Exception):
    """
    base class of every parse fault.

    attributes
    - message: one-sentence, lowercased description.
    - command: the command scope where the fault occurred (None when unknown).
    - hint: a single actionable suggestion.
    - code / title: class-level classification used by renderers.
    """
    code = Unset
    title = Unset

    def __init__(self, message, /, *, command=None, hint=Unset):
        super().__init__(message)
        self.message = message
        self.command = command
        self.hint = coalesce(hint, "run '%s --help' to see the expected usage" % command.route if command else "")

    @property
    def docs(self):
        return getdoc(self.code)

    def __rich__(self):
        return self._renderable(_options(self, {}))

    def _renderable(self, options):
        return _render(self, _palette({
            "prog-name": "bold #E6E6F0",  # near-white program name
            "code": "bold #00E5FF",  # neon cyan fault code
            "title": "bold #FF4DA6",  # pink title
            "message": "#C8C8D0",  # soft light gray message
            "hint-arrow": "#9CE19C dim",  # green arrow
            "hint": "italic #9CE19C",  # green hint text
        }), options)

    def __trigger__(self, **options):
        options = _options(self, options)
        if not options["shell"]:
            raise self
        console.print(self._renderable(options))
        if options["deferred"]:
            return
        sys.exit(1)


class MissingArgumentError(CommandException):
    code = FaultCode.MISSING_ARGUMENT
    title = "missing argument"

    def __init__(self, command, name, /):
        super().__init__(
            "argument '--%s' is required by '%s'" % (name, command.route),
            command=command,
            hint="add '--%s' or run '%s --help' to see the expected usage" % (name, command.route),
        )
        self.name = name


class MissingCommandError(CommandException):
    """
    raised when a scope declares sub-commands and none of them was given.

    the command attribute is the scope to redirect help to: renderers asked
    for usage with this fault show that scope instead of their own.
    """
    code = FaultCode.MISSING_COMMAND
    title = "missing command"

    def __init__(self, command, /):
        typeof = "subcommand" if command.parent else "command"
        super().__init__(
            "'%s' expects a %s" % (command.route, typeof),
            command=command,
            hint="choose one of %s" % ", ".join(map(repr, command.children)),
        )


class MissingValueError(CommandException):
    code = FaultCode.MISSING_VALUE
    title = "missing value"

    def __init__(self, command, name, /):
        super().__init__(
            "argument '--%s' must be followed by a value" % name,
            command=command,
            hint="pass the value after a space (for example: --%s <value>)" % name,
        )
        self.name = name


class DuplicatedArgumentError(CommandException):
    code = FaultCode.DUPLICATED_ARGUMENT
    title = "duplicated argument"

    def __init__(self, command, name, /):
        super().__init__(
            "argument '--%s' can only be present once" % name,
            command=command,
            hint="keep a single '--%s'" % name,
        )
        self.name = name


class InvalidChoiceError(CommandException):
    code = FaultCode.INVALID_CHOICE
    title = "invalid choice"

    def __init__(self, command, name, value, choices, /):
        super().__init__(
            "bad value %r for argument '--%s'" % (value, name),
            command=command,
            hint="allowed values are %s" % ", ".join(map(repr, choices)),
        )
        self.name = name
        self.value = value
        self.choices = tuple(choices)


class ResourceOpenError(CommandException):
    """
    the file behind a file argument could not be opened.

    exception holds the OSError raised by the opener (also chained as __cause__).
    """
    code = FaultCode.RESOURCE_OPEN
    title = "cannot open file"

    def __init__(self, command, name, path, exception, /):
        super().__init__(
            "unable to open %r for argument '--%s': %s" % (path, name, getattr(exception, "strerror", None) or exception),
            command=command,
            hint="check that the path exists and is accessible",
        )
        self.name = name
        self.path = path
        self.exception = exception


class UnparsedTokensError(CommandException):
    code = FaultCode.UNPARSED_TOKENS
    title = "too many arguments"

    def __init__(self, leftover, /, *, command=None):
        super().__init__(
            "too many arguments: %s" % " ".join(map(repr, leftover)),
            command=command,
            hint="remove the extra inputs or run '%s --help' to see valid forms" % command.route if command else "remove the extra inputs",
        )
        self.leftover = tuple(leftover)


class CommandWarning(Warning):
    code = Unset
    title = Unset

    def __init__(self, message, /, *, command=None, hint=Unset):
        super().__init__(message)
        self.message = message
        self.command = command
        self.hint = coalesce(hint, "")

    def __rich__(self):
        return self._renderable(_options(self, {}))

    def _renderable(self, options):
        return _render(self, _palette({
            "prog-name": "bold #E6E6F0",  # near-white program name
            "code": "bold #FFB400",  # amber fault code for warnings
            "title": "bold #FFC2E0",  # softer pink title
            "message": "#D6D6DE",  # lighter gray body
            "hint-arrow": "#B8EFAF dim",  # softer green arrow
            "hint": "italic #B8EFAF",  # softer green hint text
        }), options)

    def __trigger__(self, **options):
        options = _options(self, options)
        if not options["shell"]:
            return warnings.warn(self, stacklevel=3)
        console.print(self._renderable(options))


class DeprecatedArgumentWarning(CommandWarning):
    code = FaultCode.DEPRECATED_ARGUMENT
    title = "deprecated argument"

    def __init__(self, command, name, /):
        super().__init__(
            "argument '--%s' is deprecated" % name,
            command=command,
            hint="run '%s --help' to see current usage and alternatives" % command.route,
        )
        self.name = name


class HelpRequested(Exception):
    """
    raised by the parse engine when a help argument (-h/--help) is matched.

    not a fault: runners catch it, print the usage of command, and exit 0.
    """

    def __init__(self, command, /):
        super().__init__("help requested for '%s'" % command.route)
        self.command = command


def trigger(fault, /, **options):
    """
    surface a fault with the given runtime options.

    options
    - shell: render through rich instead of raising (errors) or warning (warnings).
    - fancy / colorful: panel and palette for the rendering.
    - deferred: in shell mode, return after printing an error instead of exiting.

    unset options fall back to the flags of the fault's root command.
    """
    if not hasattr(fault, "__trigger__") or not callable(fault.__trigger__):
        raise TypeError("trigger() argument must have a __trigger__ method")
    fault.__trigger__(**options)


def getdoc(code, /):
    """
    documentation for a fault code from the host's __docs__ mapping, or None.
    """
    if not isinstance(code, FaultCode):
        raise TypeError("getdoc() argument must be a fault-code")
    try:
        return getattr(__import__("__main__"), "__docs__", {})[code]
    except KeyError:
        return None


__all__ = (
    "CommandException",
    "MissingArgumentError",
    "MissingCommandError",
    "MissingValueError",
    "DuplicatedArgumentError",
    "InvalidChoiceError",
    "ResourceOpenError",
    "UnparsedTokensError",
    "CommandWarning",
    "DeprecatedArgumentWarning",
    "HelpRequested",
    "FaultCode",
    "trigger",
    "getdoc",
)
