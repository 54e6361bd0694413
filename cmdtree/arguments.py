r"""
cmdtree positional argument specification.

Overview
- Positionals: declares whether and how many trailing free-form arguments a command
  accepts, how they show up in the usage line and which details describe them.
  After a successful parse it holds the bound tokens and behaves as a read-only
  sequence over them.

Arity
- n > 0: exactly n tokens must be left over once flags and subcommands are consumed.
- n <= 0: any number of tokens is accepted, including none.

Ownership
- A Positionals instance belongs to exactly one command. Commands declare it
  through Command.args(...), which rejects a spec already bound elsewhere.

Quick example:
    >>> from cmdtree import root, Positionals
    >>> cli = root(name="mv")
    >>> paths = cli.args(Positionals(2, "[source] [destination]"))
    >>> cli.parse(["mv", "a.txt", "b.txt"])
    >>> list(paths)
    ['a.txt', 'b.txt']
"""
from rich.text import Text

from .utils import *


class Positionals(metaclass=SpecType):
    """
    Positional arguments specification and binding.

    Properties
    - n: required count (non-positive means “any number”).
    - usage: fragment printed in the command usage line (defaults to "[args]").
    - details: optional long-form description printed under “positional arguments”.
    - values: the tokens bound by the last successful parse (empty until then).
    - command: the Command that owns this spec, None while unbound.
    """

    __introspectable__ = (
        "n",
        "usage",
        "details",
        "values",
    )

    def __new__(cls, n=0, /, usage=Unset, details=Unset):
        """
        Construct a Positionals spec.

        Parameters
        - n: int
          Fixed number of positional arguments to enforce; non-positive disables the check.
        - usage: Unset | str
          Usage fragment such as "[source] [destination]". Must be non-empty if provided.
        - details: Unset | str | Text
          Explanation rendered in help. Must be non-empty if provided.

        Raises
        - TypeError: when n is not an int (bool rejected) or usage/details have the wrong type.
        - ValueError: when usage/details are empty strings after trimming.
        """
        if not isinstance(n, int) or isinstance(n, bool):
            raise TypeError(f"{cls.__typename__} 'n' must be an integer")

        if not isinstance(usage, str | Unset):
            raise TypeError(f"{cls.__typename__} 'usage' must be a string")
        elif isinstance(usage, str) and not (usage := usage.strip()):
            raise ValueError(f"{cls.__typename__} 'usage' cannot be empty")

        if not isinstance(details, str | Text | Unset):
            raise TypeError(f"{cls.__typename__} 'details' must be a string")
        elif isinstance(details, str) and not (details := details.strip()):
            raise ValueError(f"{cls.__typename__} 'details' cannot be empty")

        self = super().__new__(cls)
        self._n = n
        self._usage = coalesce(usage, "[args]")
        self._details = coalesce(details)
        self._values = []
        self._command = None
        return self

    @property
    def command(self):
        return self._command

    def __len__(self):
        return len(self._values)

    def __iter__(self):
        return iter(tuple(self._values))

    def __getitem__(self, index):
        return self._values[index]

    def __bool__(self):
        # a declared spec is truthy even before anything was bound
        return True

    def _claim(self, command):
        if self._command is not None:
            raise ValueError(f"{type(self).__typename__} already bound to command {self._command.name!r}")
        self._command = command
        return self

    def _bind(self, tokens):
        """
        Check arity and bind tokens. Returns an error message, or None on success.
        """
        if self._n > 0 and len(tokens) != self._n:
            return "required %d positional args, got %r" % (self._n, list(tokens))
        self._values = list(tokens)
        return None


__all__ = (
    "Positionals",
)
