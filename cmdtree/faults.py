"""
cmdtree faults (runtime parse errors) and rendering.

Scope
- FaultCode: canonical, stable numeric identifiers for every user-facing parse error.
  Codes are grouped by domain to keep copy consistent and make logs/searches predictable.
- ErrorHandling: the process-level policy a root command applies to a fault
  (return it, exit the process, or raise it).
- CommandException and its subclasses: immutable faults that carry a message plus
  options (command, chain, code, title, hint) and know how to render themselves.
- trigger(): central entry point to surface any fault under a policy.
- getdoc(): optional description lookup for a code from the host application.

Message shape
- str(fault) follows the route the parser took to reach the failing command:
  “git > git remote > git remote add: bad positional args: required 2 positional args, got ['x']”.
- Rendering through rich adds a header with the program, code and title, a hint and
  the host documentation registered for the code (see getdoc()).

Integration
- The flag host raises faults without a command; the command layer tags them with
  copy.replace(fault, command=...) and prepends ancestor names while unwinding.
- Construction-time misuse never goes through this module: it raises TypeError or
  ValueError on the spot.
"""
import copy
import sys
from collections import defaultdict
from enum import IntEnum
from types import MappingProxyType

from rich.console import Console, Group
from rich.text import Text

from .utils import Unset


class FaultCode(IntEnum):
    """
    canonical fault codes used across the parser (stable identifiers).

    grouping (by high-level domain)
    - flags (1111x)
      • MALFORMED_FLAG, UNKNOWN_FLAG, MISSING_FLAG_VALUE, INVALID_FLAG_VALUE, HELP_REQUESTED
    - positionals (1112x)
      • UNEXPECTED_POSITIONALS, POSITIONAL_COUNT

    spacing leaves room for future additions without reshuffling existing codes.
    """
    # --- flag errors (1111x) ---
    MALFORMED_FLAG              = 11111
    UNKNOWN_FLAG                = 11112
    MISSING_FLAG_VALUE          = 11113
    INVALID_FLAG_VALUE          = 11114
    HELP_REQUESTED              = 11119

    # --- positional errors (1112x) ---
    UNEXPECTED_POSITIONALS      = 11121
    POSITIONAL_COUNT            = 11122

    def normalize(self):
        """
        return a host-normalized string for this code.

        the host application can provide a __codes__ mapping in __main__
        to override numeric ids with friendlier labels. when no mapping
        is present, the numeric value is returned as a string.
        """
        return str(getattr(__import__("__main__"), "__codes__", {}).get(self, self.value))


class ErrorHandling(IntEnum):
    """
    what a root command does with a runtime fault once parsing stopped.

    - PROPAGATE: parse() returns the fault to the caller.
    - EXIT: the fault is rendered to the command output and the process exits
      with status 2 (status 0 for a help request).
    - RAISE: parse() raises the fault.
    """
    PROPAGATE = 0
    EXIT = 1
    RAISE = 2


class CommandException(Exception):
    """
    base runtime fault.

    options (all optional, read-only)
    - command: the Command where the fault happened.
    - chain: names of the ancestors the fault bubbled through, root first.
    - code, title, hint, docs: presentation metadata (docs comes from getdoc()).
    - input, index: the offending token and its position in the flag slice.
    - errors, colorful: policy and styling applied by __trigger__.
    """

    def __init__(self, message=Unset, /, **options):
        assert isinstance(message, str | Unset)
        super().__init__(message)
        self.message = message
        self.options = MappingProxyType(options)

    @property
    def command(self):
        return self.options.get("command")

    @property
    def chain(self):
        return tuple(self.options.get("chain", ()))

    @property
    def code(self):
        return self.options.get("code")

    def __str__(self):
        if not (command := self.command):
            return str(self.message or "")
        return " > ".join((*self.chain, "%s: %s: %s" % (command.name, self.options.get("title", "error"), self.message)))

    def __rich__(self):
        main = __import__("__main__")

        styles = defaultdict(str, {
            # header parts
            "prog-name": "bold #E6E6F0",  # near-white program name
            "code": "bold #00E5FF",  # neon cyan fault code
            "error-title": "bold #FF4DA6",  # friendly pinky title

            # body
            "error-message": "#C8C8D0",  # soft light gray message
            "hint-arrow": "#9CE19C dim",  # gentle green arrow
            "hint": "italic #9CE19C",  # gentle green hint text
            "docs-marker": "#7AA2F7 dim",  # soft blue marker
            "docs": "#7AA2F7",  # soft blue host documentation
        } | getattr(main, "__styles__", {}))

        colorful = self.options.get("colorful", False)

        def styler(style):
            return styles[style] if colorful else ""

        def text(fragment, style=""):
            if not fragment:
                return Text("")
            if not colorful:
                return Text(str(fragment))
            return Text(str(fragment), style)

        command = self.command
        prog = getattr(main, "__prog__", command.root.name if command else "cmdtree")
        code = self.code.normalize() if isinstance(self.code, FaultCode) else "-"

        header = Text.assemble(
            "[ ",
            text(prog, styler("prog-name")),
            " — ",
            text(code, styler("code")),
            " | ",
            text(str(self.options.get("title", "error")).title(), styler("error-title")),
            " ]"
        )
        renders = [header, text(str(self), styler("error-message"))]
        if hint := self.options.get("hint"):
            renders.append(Text.assemble(text(" → ", styler("hint-arrow")), text(hint, styler("hint"))))
        if docs := self.options.get("docs"):
            renders.append(Text.assemble(text(" ≡ ", styler("docs-marker")), text(docs, styler("docs"))))
        return Group(*renders)

    def __trigger__(self):
        match self.options.get("errors", ErrorHandling.RAISE):
            case ErrorHandling.PROPAGATE:
                return self
            case ErrorHandling.EXIT:
                if command := self.command:
                    console = command.console
                    console.print(self, soft_wrap=True)
                    console.print()
                    command.usage()
                else:
                    Console(stderr=True, highlight=False).print(self, soft_wrap=True)
                sys.exit(2)
            case _:
                raise self from None

    def __replace__(self, *unused, **overrides):
        assert not unused, "unused arguments are not allowed"
        return type(self)(self.message, **{**self.options, **overrides})


class BadFlagsError(CommandException):
    """a flag could not be parsed at some command."""


class MalformedFlagError(BadFlagsError): ...
class UnknownFlagError(BadFlagsError): ...
class MissingFlagValueError(BadFlagsError): ...
class InvalidFlagValueError(BadFlagsError): ...


class HelpRequested(BadFlagsError):
    """
    -h/-help was given on a command that does not define it.

    the usage has already been printed when this fault is raised, so the EXIT
    policy ends the process successfully without rendering anything else.
    """

    def __trigger__(self):
        if self.options.get("errors", ErrorHandling.RAISE) == ErrorHandling.EXIT:
            sys.exit(0)
        return super().__trigger__()


class BadPositionalArgsError(CommandException):
    """leftover tokens did not match the positional declaration of a command."""


class UnexpectedPositionalsError(BadPositionalArgsError): ...
class PositionalCountError(BadPositionalArgsError): ...


def trigger(fault, /, **options):
    """
    surface a fault with the given runtime options.

    contract
    - fault must provide __trigger__ and __replace__ methods (see CommandException).
    - options are merged into the fault via copy.replace() before triggering.
    - the return value is whatever the policy yields: the fault itself under
      PROPAGATE; EXIT and RAISE never return.
    """
    if (
        not hasattr(fault, "__trigger__") or
        not callable(fault.__trigger__) or
        not hasattr(fault, "__replace__") or
        not callable(fault.__replace__)
    ):
        raise TypeError("trigger() argument must have a __trigger__ and __replace__ methods")
    return copy.replace(fault, **options).__trigger__()


def getdoc(code, /):
    """
    optional documentation fetch for a fault code.

    the host application may expose a __docs__ mapping in __main__ where keys
    are FaultCode members and values are short documentation strings. returns
    None when nothing is registered.
    """
    if not isinstance(code, FaultCode):
        raise TypeError("getdoc() argument must be a fault code")
    try:
        return getattr(__import__("__main__"), "__docs__", {})[code]
    except KeyError:
        return None


__all__ = (
    "FaultCode",
    "ErrorHandling",
    "CommandException",
    "BadFlagsError",
    "MalformedFlagError",
    "UnknownFlagError",
    "MissingFlagValueError",
    "InvalidFlagValueError",
    "HelpRequested",
    "BadPositionalArgsError",
    "UnexpectedPositionalsError",
    "PositionalCountError",
    "trigger",
    "getdoc",
)
