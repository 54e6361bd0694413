"""
Faults module behavioral tests (codes, policies, rendering, host hooks).

Scope
- Validate FaultCode normalization and getdoc() against __main__ hooks.
- Validate trigger() under every ErrorHandling policy.
- Validate immutability and copy.replace() of faults.
- Validate the rich render (header, message, hint).

Conventions
- Test method names follow CamelCase per project convention.
- Host hooks are injected with mock.patch.object(..., create=True) on __main__.
"""

from __future__ import annotations

import copy
import io
import sys
import unittest
from unittest import TestCase
from unittest import mock

from rich.console import Console

from cmdtree import (
    root,
    ErrorHandling,
    FaultCode,
    CommandException,
    BadFlagsError,
    UnknownFlagError,
    HelpRequested,
    BadPositionalArgsError,
    UnexpectedPositionalsError,
    FlagSet,
    trigger,
    getdoc,
)


def render(renderable):
    console = Console(file=io.StringIO(), width=200, color_system=None, highlight=False)
    console.print(renderable, soft_wrap=True)
    return console.file.getvalue()


class TestFaultCodes(TestCase):
    """FaultCode and host-provided hooks."""

    def testCodesAreGroupedByDomain(self):
        self.assertEqual(FaultCode.UNKNOWN_FLAG, 11112)
        self.assertEqual(FaultCode.POSITIONAL_COUNT, 11122)
        self.assertEqual(len(set(FaultCode)), len(FaultCode.__members__))

    def testNormalizeDefaultsToNumber(self):
        self.assertEqual(FaultCode.UNKNOWN_FLAG.normalize(), "11112")

    def testNormalizeUsesHostCodes(self):
        with mock.patch.object(sys.modules["__main__"], "__codes__", {FaultCode.UNKNOWN_FLAG: "E-FLAG"}, create=True):
            self.assertEqual(FaultCode.UNKNOWN_FLAG.normalize(), "E-FLAG")
            self.assertEqual(FaultCode.MALFORMED_FLAG.normalize(), "11111")

    def testGetdoc(self):
        self.assertIsNone(getdoc(FaultCode.UNKNOWN_FLAG))
        with mock.patch.object(sys.modules["__main__"], "__docs__", {FaultCode.UNKNOWN_FLAG: "see -h"}, create=True):
            self.assertEqual(getdoc(FaultCode.UNKNOWN_FLAG), "see -h")
            self.assertIsNone(getdoc(FaultCode.POSITIONAL_COUNT))
        with self.assertRaises(TypeError):
            getdoc(11112)

    def testDocsAreAttachedWhenRaised(self):
        flags = FlagSet()
        with mock.patch.object(sys.modules["__main__"], "__docs__", {FaultCode.UNKNOWN_FLAG: "see -h"}, create=True):
            with self.assertRaises(UnknownFlagError) as context:
                flags.parse(["-x"])
        self.assertEqual(context.exception.options["docs"], "see -h")


class TestCommandException(TestCase):
    """Fault objects."""

    def testHierarchy(self):
        self.assertTrue(issubclass(UnknownFlagError, BadFlagsError))
        self.assertTrue(issubclass(HelpRequested, BadFlagsError))
        self.assertTrue(issubclass(UnexpectedPositionalsError, BadPositionalArgsError))
        self.assertTrue(issubclass(BadFlagsError, CommandException))
        self.assertTrue(issubclass(CommandException, Exception))

    def testStrWithoutCommandIsTheMessage(self):
        self.assertEqual(str(UnknownFlagError("flag provided but not defined: -x")), "flag provided but not defined: -x")
        self.assertEqual(str(CommandException()), "")

    def testOptionsAreReadOnly(self):
        fault = CommandException("boom", code=FaultCode.UNKNOWN_FLAG)
        with self.assertRaises(TypeError):
            fault.options["code"] = FaultCode.MALFORMED_FLAG
        self.assertEqual(fault.chain, ())

    def testReplaceKeepsTypeAndOriginal(self):
        fault = UnknownFlagError("boom", hint="first")
        replaced = copy.replace(fault, hint="second")
        self.assertIsInstance(replaced, UnknownFlagError)
        self.assertIsNot(replaced, fault)
        self.assertEqual(replaced.message, "boom")
        self.assertEqual(replaced.options["hint"], "second")
        self.assertEqual(fault.options["hint"], "first")


class TestTrigger(TestCase):
    """trigger() under each policy."""

    def testRejectsNonFaults(self):
        with self.assertRaises(TypeError):
            trigger(object())

    def testPropagateReturnsFault(self):
        fault = trigger(UnknownFlagError("boom"), errors=ErrorHandling.PROPAGATE)
        self.assertIsInstance(fault, UnknownFlagError)
        self.assertIs(fault.options["errors"], ErrorHandling.PROPAGATE)

    def testRaiseRaises(self):
        with self.assertRaises(UnknownFlagError):
            trigger(UnknownFlagError("boom"), errors=ErrorHandling.RAISE)

    def testDefaultPolicyRaises(self):
        with self.assertRaises(UnknownFlagError):
            trigger(UnknownFlagError("boom"))

    def testExitWithoutCommandWritesToStderr(self):
        with mock.patch.object(sys, "stderr", io.StringIO()) as stderr:
            with self.assertRaises(SystemExit) as context:
                trigger(UnknownFlagError("boom", code=FaultCode.UNKNOWN_FLAG), errors=ErrorHandling.EXIT)
        self.assertEqual(context.exception.code, 2)
        self.assertIn("boom", stderr.getvalue())

    def testExitOnHelpIsSilent(self):
        with mock.patch.object(sys, "stderr", io.StringIO()) as stderr:
            with self.assertRaises(SystemExit) as context:
                trigger(HelpRequested("help requested"), errors=ErrorHandling.EXIT)
        self.assertEqual(context.exception.code, 0)
        self.assertEqual(stderr.getvalue(), "")


class TestFaultRendering(TestCase):
    """Rich render of a fault produced by a real parse."""

    def setUp(self):
        self.cli = root("cmd", errors=ErrorHandling.PROPAGATE, output=io.StringIO())
        self.fault = self.cli.parse(["cmd", "extra"])

    def testHeaderMessageAndHint(self):
        rendered = render(self.fault).splitlines()
        self.assertEqual(rendered[0], "[ cmd — 11121 | Bad Positional Args ]")
        self.assertEqual(rendered[1], "cmd: bad positional args: positional args not expected, got ['extra']")
        self.assertTrue(rendered[2].startswith(" → remove the extra values"))
        self.assertEqual(len(rendered), 3)

    def testHostDocsAreRenderedUnderTheHint(self):
        docs = {FaultCode.UNEXPECTED_POSITIONALS: "this command takes no arguments"}
        with mock.patch.object(sys.modules["__main__"], "__docs__", docs, create=True):
            fault = self.cli.parse(["cmd", "extra"])
        rendered = render(fault).splitlines()
        self.assertTrue(rendered[2].startswith(" → "))
        self.assertEqual(rendered[3], " ≡ this command takes no arguments")

    def testHostDocsAreRenderedOnExit(self):
        output = io.StringIO()
        cli = root("cmd", errors=ErrorHandling.EXIT, output=output)
        docs = {FaultCode.UNEXPECTED_POSITIONALS: "this command takes no arguments"}
        with mock.patch.object(sys.modules["__main__"], "__docs__", docs, create=True):
            with self.assertRaises(SystemExit):
                cli.parse(["cmd", "extra"])
        self.assertIn("this command takes no arguments", output.getvalue())

    def testHostProgramName(self):
        with mock.patch.object(sys.modules["__main__"], "__prog__", "mytool", create=True):
            self.assertTrue(render(self.fault).startswith("[ mytool — "))

    def testColorfulRenderKeepsText(self):
        fault = copy.replace(self.fault, colorful=True)
        self.assertIn("positional args not expected", render(fault))


if __name__ == "__main__":
    unittest.main()
