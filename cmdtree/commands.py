"""
cmdtree command layer: build a tree of subcommands and parse one argv against it.

What this module provides
- Command: one vertex of the command tree, owning:
  • a FlagSet (its own flags, defined through string/bool/int/float/duration/var/func),
  • a mapping of child key → Command (nested subcommands),
  • optionally a Positionals spec (trailing free-form arguments).
- root(...): create the top of a tree with its runtime options.

Parsing, per command and in this order
1. strip the leading token (program or subcommand name) and parse flags until the
   first non-flag token or a "--" terminator;
2. if the next token names a child, recurse into it with the remaining tokens;
3. bind whatever is left to the command's positionals: none declared means nothing
   may be left, a fixed count must match exactly, otherwise everything is accepted.

A flag belongs to the command it follows: `cmd -flag sub` sets cmd's flag, while
`cmd sub -flag` is parsed by sub's flag set and fails unless sub defines it.

Before every parse the tree is validated: along any root-to-leaf path at most one
command may declare positionals. Building mistakes (duplicate child, positionals
declared twice or on both an ancestor and a descendant) raise TypeError/ValueError
immediately; runtime input errors are faults routed through the root's ErrorHandling.

Quick start
    from cmdtree import root, ErrorHandling

    git = root(name="git", synopsis="the stupid content tracker")
    verbose = git.bool("v", False, "be verbose")

    remote = git.command("remote", "manage tracked repositories")
    add = remote.command("add", "add a remote")
    fetch = add.bool("f", False, "fetch after adding")
    pair = add.args(2, "[name] [url]")

    git.parse(["git", "-v", "remote", "add", "-f", "origin", "https://example.com/repo.git"])
    # verbose.value → True, fetch.value → True, list(pair) → ['origin', 'https://...']

See also
- cmdtree.flags for the flag grammar and help layout.
- cmdtree.faults for fault codes, error policies and rendering.
"""
import copy
import os.path
import shlex
import sys
from collections import defaultdict
from collections.abc import Iterable
from datetime import timedelta
from types import MappingProxyType

from rich.console import Console
from rich.text import Text

from .arguments import Positionals
from .faults import *
from .flags import FlagSet
from .utils import *

DETAILS_WIDTH = 80
DETAILS_INDENT = "  "


class Command(metaclass=SpecType):
    """
    A command of the tree: flags, children and optional positionals.

    Identity
    - name: fully qualified name (root name, or "parent-name key"); fixed at creation.
    - key: the token that selects this command under its parent (the name for a root).

    Runtime options (set on the root, inherited by children at creation)
    - errors: ErrorHandling policy applied by parse().
    - output: file-like sink for help and fault renders; None means standard error.
    - colorful: style renders with the palette (overridable via __styles__ in __main__).

    Lifecycle
    - Build with root(...), .command(...), .args(...) and the flag helpers.
    - parse(...) validates the tree, resets the per-parse state and runs the descent.
    - After a successful parse, flag handles and positionals hold the parsed values and
      .parsed tells which commands of the tree were reached.
    """

    __introspectable__ = (
        "name",
        "key",
        "synopsis",
        "details",
        "errors",
        "output",
        "colorful",
        "parent",
        "flags",
        "positionals",
        "parsed",
    )

    __displayable__ = (
        "name",
        "synopsis",
        "children",
    )

    @property
    def children(self):
        """
        Read-only mapping of child key → Command, iterated in alphabetical key order.
        """
        return MappingProxyType({key: self._children[key] for key in sorted(self._children)})

    @property
    def root(self):
        """
        Return the topmost command of the tree this command belongs to.
        """
        child, parent = self, self.parent
        while parent:
            child, parent = parent, parent.parent
        return child

    @property
    def path(self):
        """
        Return the ancestry from root to this command as a tuple.
        """
        path = [command := self]
        while command.parent:
            path.append(command := command.parent)
        return tuple(reversed(path))

    @property
    def console(self):
        """
        A rich console writing to this command's output.
        """
        return Console(
            **({"stderr": True} if self._output is None else {"file": self._output}),
            color_system="auto" if self._colorful else None,
            highlight=False,
            emoji=False,
        )

    def __new__(
            cls,
            parent=Unset,
            /,
            name=Unset,
            synopsis=Unset,
            details=Unset,
            *,
            errors=Unset,
            output=Unset,
            colorful=Unset
    ):
        """
        Construct a root command, or a child when parent is given.

        Parameters
        - parent: Command | Unset
          Parent to attach to. Children must pass a name (their key) and inherit
          errors/output/colorful from the parent; passing those options raises TypeError.
        - name: str | Unset
          Root: display name, defaults to the basename of sys.argv[0].
          Child: the key that selects it; non-empty, no whitespace, not starting with "-".
        - synopsis, details: str | Text | Unset
          One-line description and longer help text (empty strings mean none).
        - errors: ErrorHandling | Unset (root only)
          Defaults to ErrorHandling.EXIT.
        - output: file-like | None | Unset (root only)
          Defaults to None (standard error, resolved at write time).
        - colorful: bool | Unset (root only)
          Defaults to False.

        Raises
        - TypeError/ValueError on invalid option types or values, or when the child key
          is already in use under the parent.
        """
        if not isinstance(parent, Command | Unset):
            raise TypeError(f"{cls.__typename__} 'parent' must be a command")

        if not isinstance(name, str | Unset):
            raise TypeError(f"{cls.__typename__} 'name' must be a string")

        for field, value in (("synopsis", synopsis), ("details", details)):
            if not isinstance(value, str | Text | Unset):
                raise TypeError(f"{cls.__typename__} {field!r} must be a string")

        if parent:
            if any(option is not Unset for option in (errors, output, colorful)):
                raise TypeError(f"{cls.__typename__} runtime options can only be set on a root command")
            if name is Unset:
                raise TypeError(f"{cls.__typename__} subcommand requires a name")
            elif not name or name.startswith("-") or any(char.isspace() for char in name):
                raise ValueError(f"{cls.__typename__} subcommand name {name!r} is not a valid token")
            elif name in parent._children:
                raise ValueError(f"{cls.__typename__} subcommand name {name!r} is already in use")
            key = name
            name = f"{parent.name} {name}"
            errors, output, colorful = parent.errors, parent.output, parent.colorful
        else:
            name = coalesce(name, os.path.basename(sys.argv[0]) if sys.argv else "")
            key = name
            errors = coalesce(errors, ErrorHandling.EXIT)
            if not isinstance(errors, int) or isinstance(errors, bool):
                raise TypeError(f"{cls.__typename__} 'errors' must be an error handling policy")
            errors = ErrorHandling(errors)
            output = coalesce(output)
            if output is not None and not callable(getattr(output, "write", None)):
                raise TypeError(f"{cls.__typename__} 'output' must be a writable stream")
            colorful = bool(coalesce(colorful, False))

        self = super().__new__(cls)
        self._name = name
        self._key = key
        self._synopsis = _normalize(synopsis)
        self._details = _normalize(details)
        self._errors = errors
        self._output = output
        self._colorful = colorful
        self._parent = coalesce(parent)
        self._children = {}
        self._positionals = None
        self._parsed = False
        self._flags = FlagSet(name, usage=self.usage)

        if parent:
            parent._children[key] = self
        return self

    # ── construction ───────────────────────────────────────────────────────

    def command(self, name, synopsis=Unset, /, details=Unset):
        """
        Create a subcommand selected by the token `name` and return it.

        The child's full name is this command's name followed by `name`; runtime options
        are inherited. A name already used by a sibling raises ValueError.
        """
        return Command(self, name, synopsis, details)

    def args(self, n=0, /, usage=Unset, details=Unset):
        """
        Declare the positional arguments this command accepts and return their handle.

        Accepts either the Positionals fields (n, usage, details) or a ready Positionals
        instance. Only commands that declared positionals accept leftover tokens.

        Raises
        - TypeError: when called a second time on the same command, or when a
          Positionals instance is combined with usage/details.
        - ValueError: when the Positionals instance already belongs to another command.
        """
        if self._positionals is not None:
            raise TypeError(f"{type(self).__typename__} {self.name!r} positionals cannot be overridden")
        if isinstance(n, Positionals):
            if usage is not Unset or details is not Unset:
                raise TypeError("args() takes either a positionals spec or its fields, not both")
            positionals = n
        else:
            positionals = Positionals(n, usage, details)
        self._positionals = positionals._claim(self)
        return positionals

    # ── flags (forwarded to the command's FlagSet) ─────────────────────────

    def string(self, name, default="", usage=""):
        return self._flags.string(name, default, usage)

    def bool(self, name, default=False, usage=""):
        return self._flags.bool(name, default, usage)

    def int(self, name, default=0, usage=""):
        return self._flags.int(name, default, usage)

    def float(self, name, default=0.0, usage=""):
        return self._flags.float(name, default, usage)

    def duration(self, name, default=timedelta(0), usage=""):
        return self._flags.duration(name, default, usage)

    def var(self, name, type, default=None, usage=""):
        return self._flags.var(name, type, default, usage)

    def func(self, name, usage, callback=Unset, /):
        return self._flags.func(name, usage, callback)

    # ── parsing ────────────────────────────────────────────────────────────

    def parse(self, args=Unset, /):
        """
        Parse an argument vector against the tree rooted at this command.

        Parameters
        - args:
          • Unset: read sys.argv (element 0 is the program name).
          • str: shell-like string split with shlex.split (first word is the program name).
          • Iterable[str]: the argument vector itself.

        Returns
        - None on success.
        - The fault under ErrorHandling.PROPAGATE. EXIT renders the fault and exits
          the process (status 2, or 0 for help); RAISE raises the fault.

        Raises
        - ValueError: when the tree is illegal (nested positionals) or the vector is empty.
        - TypeError: when args is not a string or an iterable of strings.
        """
        tokens = _tokenize(args)
        self._validate()
        self._reset()
        try:
            self._parse(tokens)
        except CommandException as fault:
            return trigger(fault, errors=self.errors, colorful=self.colorful)
        return None

    def _validate(self, claimant=None):
        """
        Enforce that no command and one of its descendants both declare positionals.

        claimant carries the name of the nearest ancestor-or-self with positionals.
        """
        if self._positionals is not None:
            if claimant is not None:
                raise ValueError(
                    "illegal: parent %r and subcommand %r both define positional arguments" % (claimant, self.name)
                )
            claimant = self.name
        for child in self._children.values():
            child._validate(claimant)

    def _reset(self):
        self._parsed = False
        self._flags.reset()
        if self._positionals is not None:
            self._positionals._values = []
        for child in self._children.values():
            child._reset()

    def _parse(self, tokens):
        """
        Parse tokens (tokens[0] names this command) and return the unconsumed remainder.
        """
        try:
            remaining = self._flags.parse(tokens[1:])
        except BadFlagsError as fault:
            raise copy.replace(
                fault,
                command=self,
                hint=fault.options.get("hint") or "run '%s -h' to see the flags of this %s" % (
                    self.name, "subcommand" if self.parent else "command"
                ),
            ) from None
        self._parsed = True

        # a token naming a child always selects it, even when positionals are accepted here
        if remaining and (child := self._children.get(remaining[0])):
            try:
                remaining = child._parse(remaining)
            except CommandException as fault:
                raise copy.replace(fault, chain=(self.name, *fault.chain)) from None

        return self._bind(remaining)

    def _bind(self, tokens):
        if self._positionals is None:
            if tokens:
                raise UnexpectedPositionalsError(
                    "positional args not expected, got %r" % list(tokens),
                    command=self,
                    title="bad positional args",
                    code=FaultCode.UNEXPECTED_POSITIONALS,
                    input=list(tokens),
                    hint="remove the extra values or run '%s -h' to see the expected usage" % self.name,
                    docs=getdoc(FaultCode.UNEXPECTED_POSITIONALS),
                )
            return tokens

        if message := self._positionals._bind(tokens):
            raise PositionalCountError(
                message,
                command=self,
                title="bad positional args",
                code=FaultCode.POSITIONAL_COUNT,
                input=list(tokens),
                hint="pass exactly %d: %s" % (self._positionals.n, self._positionals.usage),
                docs=getdoc(FaultCode.POSITIONAL_COUNT),
            )
        return []

    # ── rendering ──────────────────────────────────────────────────────────

    def usage(self):
        """
        Print this command's help to its output.
        """
        self.console.print(self, soft_wrap=True)

    def __rich__(self):
        """
        Build the help renderable.

        Sections (each only when applicable), separated by blank lines
        - usage line: name, "[flags]", positional usage
        - synopsis
        - details (wrapped at 80 columns, indented)
        - commands/subcommands: children in alphabetical order with their synopsis
        - flags: the FlagSet defaults
        - positional arguments: positional details (wrapped, indented)

        Palette keys
        - usage-label, program-name, usage-section, positional-usage
        - synopsis-section, details-section, group-label
        - children, children-description
        - flag-name, flag-type, flag-description, flag-default
        """
        styles = defaultdict(str, {
            # === Head sections ===
            "usage-label": "bold #00E6FF",  # CYAN → signature info color
            "program-name": "bold #FF4D94",  # MAGENTA-PINK → brand pop
            "usage-section": "bold #36C5F0",  # SKY-BLUE → softer than cyan
            "positional-usage": "bold #FFD600",  # AMBER for parameters
            "synopsis-section": "italic #A3A3A3",  # Neutral gray
            "details-section": "#9CA3AF",  # Muted gray

            # === Groups ===
            "group-label": "bold #FFFFFF",  # Pure white headers
            "children": "bold #36C5F0",  # Sky-blue subcommands
            "children-description": "#9CA3AF",

            # === Flags ===
            "flag-name": "bold #22C55E",  # GREEN for flags
            "flag-type": "bold #FFD600",
            "flag-description": "#9CA3AF",
            "flag-default": "#737373",  # Dim footer gray
        } | getattr(__import__("__main__"), "__styles__", {}))

        def styler(style):
            return styles[style] if self.colorful else ""

        def text(fragment, style=""):
            if not self.colorful:
                return Text(str(fragment))
            if isinstance(fragment, Text):
                return fragment.copy()
            return Text(str(fragment), style)

        def wrapped(fragment, style):
            lines = []
            for line in text(fragment, styler(style)).wrap(self.console, DETAILS_WIDTH - len(DETAILS_INDENT)):
                line = Text(DETAILS_INDENT) + line
                line.rstrip()
                lines.append(line)
            return Text("\n").join(lines)

        sections = []

        usage = Text().append("usage", styler("usage-label")).append(": ").append(self.name, styler("program-name"))
        if len(self._flags):
            usage.append(" ").append("[flags]", styler("usage-section"))
        if self._positionals is not None:
            usage.append(" ").append(self._positionals.usage, styler("positional-usage"))
        sections.append(usage)

        if self.synopsis:
            sections.append(text(self.synopsis, styler("synopsis-section")))

        if self.details:
            sections.append(wrapped(self.details, "details-section"))

        if self._children:
            typeof = "subcommands" if self.parent else "commands"
            width = max(map(len, self._children))
            group = Text().append(typeof, styler("group-label")).append(":\n\n")
            rows = []
            for key, child in self.children.items():
                row = Text(DETAILS_INDENT).append(key.ljust(width), styler("children"))
                if child.synopsis:
                    row.append("  ").append(text(child.synopsis, styler("children-description")))
                row.rstrip()
                rows.append(row)
            sections.append(group.append(Text("\n").join(rows)))

        if len(self._flags):
            group = Text().append("flags", styler("group-label")).append(":\n\n")
            sections.append(group.append(self._flags.render(styler)))

        if self._positionals is not None and self._positionals.details:
            group = Text().append("positional arguments", styler("group-label")).append(":\n\n")
            sections.append(group.append(wrapped(self._positionals.details, "details-section")))

        return Text("\n\n").join(sections)


def _normalize(object):
    if isinstance(object, str):
        return object.strip() or None
    return coalesce(object)


def _tokenize(args):
    if args is Unset:
        tokens = list(sys.argv)
    elif isinstance(args, str):
        tokens = shlex.split(args)
    elif isinstance(args, Iterable):
        tokens = list(args)
        if not all(isinstance(token, str) for token in tokens):
            raise TypeError("parse() argument must be a string or an iterable of strings")
    else:
        raise TypeError("parse() argument must be a string or an iterable of strings")
    if not tokens:
        raise ValueError("parse() argument must include at least the command name")
    return tokens


def root(name=Unset, synopsis=Unset, details=Unset, *, errors=Unset, output=Unset, colorful=Unset):
    """
    Create the root command of a tree.

    Defaults
    - name: basename of sys.argv[0]
    - errors: ErrorHandling.EXIT
    - output: standard error
    - colorful: False

    Returns
    - Command without a parent; use .command(...) to grow the tree.
    """
    return Command(Unset, name, synopsis, details, errors=errors, output=output, colorful=colorful)


__all__ = (
    "Command",
    "root",
)
