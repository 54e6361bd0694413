r"""
cmdtree flag host: per-command flag registry, parser and defaults renderer.

Overview
- Flag: one named flag with a kind (string, bool, int, float, duration, value, func),
  a default, a usage line and the value set by the last parse.
- FlagSet: the registry owned by each command. Definition helpers return Flag handles;
  parse() consumes leading flag tokens and hands the rest back untouched.

Token grammar (one token at a time, left to right)
- "-name" / "--name": both dash styles are accepted for every flag.
- "-name=value": inline value; the only way to pass an explicit value to a bool flag.
- "-name value": spaced value, for non-bool flags only.
- "--": terminates flag parsing and is consumed.
- any token not starting with "-", or a lone "-": stops parsing and is left over.
- "-h" / "-help" on a set that does not define them: the usage callback runs and
  HelpRequested is raised.

Faults
- MalformedFlagError   → "bad flag syntax: ---x"
- UnknownFlagError     → "flag provided but not defined: -x"
- MissingFlagValueError→ "flag needs an argument: -x"
- InvalidFlagValueError→ "invalid value 'abc' for flag -n: parse error"

Definition misuse (flag redefined, bad names) raises ValueError/TypeError immediately.

Quick example:
    >>> flags = FlagSet("demo")
    >>> verbose = flags.bool("v", False, "print more")
    >>> count = flags.int("n", 1, "number of `runs`")
    >>> flags.parse(["-v", "-n", "3", "rest"])
    ['rest']
    >>> verbose.value, count.value
    (True, 3)
"""
import re
from collections import deque
from datetime import timedelta

from rich.console import Console
from rich.text import Text

from .faults import *
from .utils import *

_BOOLEANS = {
    "1": True, "t": True, "T": True, "TRUE": True, "true": True, "True": True,
    "0": False, "f": False, "F": False, "FALSE": False, "false": False, "False": False,
}

# microseconds per unit; nanoseconds are truncated by timedelta
_UNITS = {
    "ns": 0.001,
    "us": 1,
    "µs": 1,
    "μs": 1,
    "ms": 1_000,
    "s": 1_000_000,
    "m": 60_000_000,
    "h": 3_600_000_000,
}
_SEGMENT = r"([0-9]+\.?[0-9]*|\.[0-9]+)(ns|us|µs|μs|ms|s|m|h)"
_DURATION = re.compile(r"[-+]?(?:%s)+" % _SEGMENT)
_INTEGER = re.compile(r"[-+]?[0-9A-Za-z_]+")


def _parse_bool(text):
    try:
        return _BOOLEANS[text]
    except KeyError:
        raise ValueError("parse error") from None


def _parse_int(text):
    """
    Parse a signed 64-bit integer with base prefixes ("0x1f", "0o17", "0b11").

    A leading zero alone also selects octal ("017" is 15).
    """
    if not _INTEGER.fullmatch(text):
        raise ValueError("parse error")
    sign = "-" if text[0] == "-" else ""
    digits = text[1:] if text[0] in "+-" else text
    if len(digits) > 1 and digits[0] == "0" and digits[1] not in "xXoObB":
        digits = "0o" + digits[1:]
    try:
        value = int(sign + digits, 0)
    except ValueError:
        raise ValueError("parse error") from None
    if not -2 ** 63 <= value < 2 ** 63:
        raise ValueError("value out of range")
    return value


def _parse_float(text):
    if not text.isascii() or text != text.strip():
        raise ValueError("parse error")
    try:
        return float(text)
    except ValueError:
        raise ValueError("parse error") from None


def _parse_duration(text):
    """
    Parse a duration such as "300ms", "-1.5h" or "2h45m" into a timedelta.

    A bare "0" (optionally signed) is the only unit-less form accepted.
    """
    if text in ("0", "+0", "-0"):
        return timedelta(0)
    if not _DURATION.fullmatch(text):
        raise ValueError("invalid duration %r" % text)
    total = sum(float(number) * _UNITS[unit] for number, unit in re.findall(_SEGMENT, text))
    try:
        return timedelta(microseconds=-total if text.startswith("-") else total)
    except OverflowError:
        raise ValueError("invalid duration %r" % text) from None


def _trim(number):
    return ("%f" % number).rstrip("0").rstrip(".")


def _format_duration(value):
    """
    Render a timedelta the way durations are written on the command line ("1h30m0s").
    """
    micro = value // timedelta(microseconds=1)
    if not micro:
        return "0s"
    sign, micro = "-" * (micro < 0), abs(micro)
    if micro < 1_000:
        return "%s%dµs" % (sign, micro)
    if micro < 1_000_000:
        return "%s%sms" % (sign, _trim(micro / 1_000))
    hours, rest = divmod(micro, 3_600_000_000)
    minutes, rest = divmod(rest, 60_000_000)
    rendered = "%ss" % _trim(rest / 1_000_000)
    if hours or minutes:
        rendered = "%dm%s" % (minutes, rendered)
    if hours:
        rendered = "%dh%s" % (hours, rendered)
    return sign + rendered


def _iszero(value):
    return value is None or (isinstance(value, bool | int | float | str | timedelta) and not value)


class Flag(metaclass=SpecType):
    """
    A single named flag.

    Properties
    - name: the flag name without dashes ("v", "output").
    - usage: the help line (back-quoted word, if any, names the value in help).
    - kind: "string", "bool", "int", "float", "duration", "value" or "func".
    - default: the value restored before every parse.
    - value: the current value (default until set by a parse or FlagSet.set()).
    """

    __introspectable__ = (
        "name",
        "usage",
        "kind",
        "default",
        "value",
    )

    __displayable__ = (
        "name",
        "kind",
        "value",
    )

    def __new__(cls, name, /, usage="", *, kind, default, convert, render=str, label=Unset):
        if not isinstance(name, str):
            raise TypeError(f"{cls.__typename__} 'name' must be a string")
        elif not name:
            raise ValueError(f"{cls.__typename__} 'name' cannot be empty")
        elif name.startswith("-"):
            raise ValueError(f"{cls.__typename__} {name!r} begins with -")
        elif "=" in name:
            raise ValueError(f"{cls.__typename__} {name!r} contains =")
        elif any(char.isspace() for char in name):
            raise ValueError(f"{cls.__typename__} {name!r} contains whitespace")

        if not isinstance(usage, str):
            raise TypeError(f"{cls.__typename__} 'usage' must be a string")
        if not callable(convert):
            raise TypeError(f"{cls.__typename__} converter must be callable")

        self = super().__new__(cls)
        self._name = name
        self._usage = usage
        self._kind = kind
        self._default = default
        self._value = default
        self._convert = convert
        self._render = render
        self._label = coalesce(label, kind)
        return self

    @property
    def boolean(self):
        return self._kind == "bool"

    def unquote(self):
        """
        Return (label, usage) for help output.

        A back-quoted word in the usage becomes the value label and loses its quotes;
        otherwise the label comes from the flag kind (empty for bool flags).
        """
        if match := re.search(r"`([^`]*)`", self._usage):
            return match[1], self._usage[:match.start()] + match[1] + self._usage[match.end():]
        return ("" if self.boolean else self._label), self._usage

    def _reset(self):
        self._value = self._default

    def _set(self, text):
        self._value = self._convert(text)


class FlagSet(metaclass=SpecType):
    """
    Flag registry and parser owned by one command.

    Properties
    - name: label of the owner (used in the default usage header).
    - formal: mapping of every defined flag by name.
    - actual: mapping of the flags set by the last parse.
    - args: tokens left over by the last parse.
    - parsed: whether parse() has run.
    """

    __introspectable__ = (
        "name",
        "formal",
        "actual",
        "args",
        "parsed",
    )

    __displayable__ = (
        "name",
        "formal",
    )

    def __new__(cls, name=Unset, /, usage=Unset):
        """
        Construct an empty flag set.

        Parameters
        - name: Unset | str
          Owner label; defaults to an empty string.
        - usage: Unset | Callable[[], None]
          Called when help is requested; defaults to printing the flag defaults to stderr.
        """
        if not isinstance(name, str | Unset):
            raise TypeError(f"{cls.__typename__} 'name' must be a string")
        if usage is not Unset and not callable(usage):
            raise TypeError(f"{cls.__typename__} 'usage' must be callable")

        self = super().__new__(cls)
        self._name = coalesce(name, "")
        self._usage = usage
        self._formal = {}
        self._actual = {}
        self._args = []
        self._parsed = False
        return self

    def __len__(self):
        return len(self._formal)

    def __contains__(self, name):
        return name in self._formal

    # ── definitions ────────────────────────────────────────────────────────

    def _define(self, flag):
        if flag.name in self._formal:
            if self._name:
                raise ValueError(f"{self._name} flag redefined: {flag.name}")
            raise ValueError(f"flag redefined: {flag.name}")
        self._formal[flag.name] = flag
        return flag

    def string(self, name, default="", usage=""):
        if not isinstance(default, str):
            raise TypeError("string flag default must be a string")
        return self._define(Flag(name, usage, kind="string", default=default, convert=str, render=repr))

    def bool(self, name, default=False, usage=""):
        if not isinstance(default, bool):
            raise TypeError("bool flag default must be a bool")
        return self._define(Flag(name, usage, kind="bool", default=default, convert=_parse_bool))

    def int(self, name, default=0, usage=""):
        if not isinstance(default, int) or isinstance(default, bool):
            raise TypeError("int flag default must be an integer")
        return self._define(Flag(name, usage, kind="int", default=default, convert=_parse_int))

    def float(self, name, default=0.0, usage=""):
        if not isinstance(default, int | float) or isinstance(default, bool):
            raise TypeError("float flag default must be a number")
        return self._define(Flag(name, usage, kind="float", default=default, convert=_parse_float))

    def duration(self, name, default=timedelta(0), usage=""):
        if not isinstance(default, timedelta):
            raise TypeError("duration flag default must be a timedelta")
        return self._define(Flag(
            name, usage, kind="duration", default=default, convert=_parse_duration, render=_format_duration
        ))

    def var(self, name, type, default=None, usage=""):
        """
        Define a flag converted by an arbitrary callable (ValueError/TypeError mean a bad value).
        """
        return self._define(Flag(
            name, usage, kind="value", default=default, convert=type, label=getattr(type, "__name__", "value")
        ))

    def func(self, name, usage, callback=Unset, /):
        """
        Define a flag that calls callback(text) each time it appears on the command line.

        Without a callback, return a decorator: @flags.func("tag", "add a `tag`").
        """
        @rename("func")
        def wrapper(callback, /):
            if not callable(callback):
                raise TypeError("@func() must be applied to a callable")

            def convert(text):
                callback(text)
                return text

            self._define(Flag(name, usage, kind="func", default=None, convert=convert, label="value"))
            return callback

        return wrapper(callback) if callback is not Unset else wrapper

    # ── access ─────────────────────────────────────────────────────────────

    def lookup(self, name, /):
        return self._formal.get(name)

    def set(self, name, value, /):
        """
        Set a flag from its textual form, as if it had been passed on the command line.

        Raises ValueError for an undefined flag or a value the flag cannot convert.
        """
        if (flag := self._formal.get(name)) is None:
            raise ValueError(f"no such flag -{name}")
        flag._set(value)
        self._actual[name] = flag

    def visit(self, callback, /):
        """Call callback(flag) for every flag set by the last parse, in name order."""
        for name in sorted(self._actual):
            callback(self._actual[name])

    def visit_all(self, callback, /):
        """Call callback(flag) for every defined flag, in name order."""
        for name in sorted(self._formal):
            callback(self._formal[name])

    # ── parsing ────────────────────────────────────────────────────────────

    def reset(self):
        """Restore every flag to its default and forget the last parse."""
        for flag in self._formal.values():
            flag._reset()
        self._actual.clear()
        self._args = []
        self._parsed = False

    def parse(self, arguments, /):
        """
        Consume leading flag tokens and return the remaining ones.

        Flag values are reset to their defaults first, so a set can be parsed many times.

        Raises
        - BadFlagsError subclasses (see module docs); HelpRequested after running the usage callback.
        """
        self.reset()
        self._parsed = True

        tokens = deque(arguments)
        index = 0
        while tokens:
            token = tokens[0]
            if len(token) < 2 or not token.startswith("-"):
                break
            if token == "--":
                tokens.popleft()
                break

            name = token[1 + (token[1] == "-"):]
            if not name or name[0] in "-=":
                raise MalformedFlagError(
                    "bad flag syntax: %s" % token,
                    title="bad flags",
                    code=FaultCode.MALFORMED_FLAG,
                    input=token,
                    index=index,
                    docs=getdoc(FaultCode.MALFORMED_FLAG),
                )

            tokens.popleft()
            start, index = index, index + 1
            name, inline, value = name.partition("=")

            if (flag := self._formal.get(name)) is None:
                if name in ("h", "help"):
                    self._help()
                    raise HelpRequested(
                        "help requested",
                        title="bad flags",
                        code=FaultCode.HELP_REQUESTED,
                        input=token,
                        index=start,
                        docs=getdoc(FaultCode.HELP_REQUESTED),
                    )
                raise UnknownFlagError(
                    "flag provided but not defined: -%s" % name,
                    title="bad flags",
                    code=FaultCode.UNKNOWN_FLAG,
                    input=token,
                    index=start,
                    docs=getdoc(FaultCode.UNKNOWN_FLAG),
                )

            if flag.boolean:
                # bool flags never take the next token as their value
                if not inline:
                    value = "true"
                try:
                    flag._set(value)
                except (ValueError, TypeError) as error:
                    raise InvalidFlagValueError(
                        "invalid boolean value %r for -%s: %s" % (value, name, error),
                        title="bad flags",
                        code=FaultCode.INVALID_FLAG_VALUE,
                        input=token,
                        index=start,
                        docs=getdoc(FaultCode.INVALID_FLAG_VALUE),
                    ) from None
            else:
                if not inline and tokens:
                    value, inline, index = tokens.popleft(), "=", index + 1
                if not inline:
                    raise MissingFlagValueError(
                        "flag needs an argument: -%s" % name,
                        title="bad flags",
                        code=FaultCode.MISSING_FLAG_VALUE,
                        input=token,
                        index=start,
                        docs=getdoc(FaultCode.MISSING_FLAG_VALUE),
                    )
                try:
                    flag._set(value)
                except (ValueError, TypeError) as error:
                    raise InvalidFlagValueError(
                        "invalid value %r for flag -%s: %s" % (value, name, error),
                        title="bad flags",
                        code=FaultCode.INVALID_FLAG_VALUE,
                        input=token,
                        index=start,
                        docs=getdoc(FaultCode.INVALID_FLAG_VALUE),
                    ) from None

            self._actual[name] = flag

        self._args = list(tokens)
        return list(tokens)

    def _help(self):
        if self._usage is not Unset:
            return self._usage()
        console = Console(stderr=True, highlight=False)
        if self._name:
            console.print("usage of %s:" % self._name, soft_wrap=True)
        console.print(self, soft_wrap=True)

    # ── rendering ──────────────────────────────────────────────────────────

    def render(self, styler=lambda style: ""):
        """
        Render the flag defaults, one entry per flag in name order.

        Short heads ("  -x") keep the usage on the same line at column 8; longer heads
        break and indent the usage by eight spaces. Non-zero defaults are appended.
        """
        entries = []
        for name in sorted(self._formal):
            flag = self._formal[name]
            label, usage = flag.unquote()

            entry = Text("  ").append("-" + name, styler("flag-name"))
            if label:
                entry.append(" ").append(label, styler("flag-type"))
            if len(entry) <= 4:
                entry.append(" " * (8 - len(entry)))
            else:
                entry.append("\n" + " " * 8)
            entry.append(usage.replace("\n", "\n" + " " * 8), styler("flag-description"))
            if not _iszero(flag.default):
                entry.append(" (default %s)" % flag._render(flag.default), styler("flag-default"))
            entry.rstrip()
            entries.append(entry)
        return Text("\n").join(entries)

    def __rich__(self):
        return self.render()


__all__ = (
    "Flag",
    "FlagSet",
)
