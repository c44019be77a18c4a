"""
Utilities module behavioral tests (sentinel, coalesce, rename, mirror).

Conventions
- Test method names follow CamelCase per project convention.
"""

from __future__ import annotations

import unittest
from types import MappingProxyType
from unittest import TestCase

from argtree.utils import Unset, UnsetType, coalesce, rename, mirror


class TestUnset(TestCase):
    """Behavioral tests for the Unset sentinel."""

    def testUnsetIsSingleton(self):
        self.assertIs(UnsetType(), Unset)

    def testUnsetIsFalsey(self):
        self.assertFalse(Unset)

    def testUnsetRepr(self):
        self.assertEqual(repr(Unset), "Unset")

    def testUnsetSupportsUnionsInIsinstance(self):
        self.assertTrue(isinstance(Unset, str | Unset))
        self.assertTrue(isinstance("x", str | Unset))
        self.assertFalse(isinstance(1, str | Unset))

    def testUnsetTypeCannotBeSubclassed(self):
        with self.assertRaises(TypeError):
            type("Derived", (UnsetType,), {})


class TestCoalesce(TestCase):
    """Behavioral tests for coalesce()."""

    def testCoalesceReplacesUnset(self):
        self.assertEqual(coalesce(Unset, "fallback"), "fallback")
        self.assertIsNone(coalesce(Unset))

    def testCoalesceKeepsFalseyValues(self):
        for value in (None, 0, "", [], False):
            self.assertIs(coalesce(value, "fallback"), value)


class TestRename(TestCase):
    """Behavioral tests for the @rename decorator."""

    def testRenameSetsNames(self):
        @rename("other")
        def function():
            pass
        self.assertEqual(function.__name__, "other")
        self.assertEqual(function.__qualname__, "other")

    def testRenameRejectsBadArguments(self):
        with self.assertRaises(TypeError):
            rename(1)  # type: ignore[arg-type]
        with self.assertRaises(TypeError):
            rename("name")(1)  # type: ignore[arg-type]


class TestMirror(TestCase):
    """Behavioral tests for mirror() read-only properties."""

    class Node:
        items = mirror("items")
        table = mirror("table")
        label = mirror("label")

        def __init__(self):
            self._items = ["a"]
            self._table = {"k": "v"}
            self._label = "node"

    def testMirrorReadsPrivateAttribute(self):
        self.assertEqual(self.Node().label, "node")

    def testMirrorIsReadOnly(self):
        with self.assertRaises(AttributeError):
            self.Node().label = "other"

    def testMirrorCopiesLists(self):
        node = self.Node()
        node.items.append("b")
        self.assertEqual(node.items, ["a"])

    def testMirrorWrapsMappings(self):
        table = self.Node().table
        self.assertIsInstance(table, MappingProxyType)
        with self.assertRaises(TypeError):
            table["k"] = "w"  # type: ignore[index]

    def testMirrorRejectsNonStringName(self):
        with self.assertRaises(TypeError):
            mirror(1)  # type: ignore[arg-type]


if __name__ == "__main__":
    unittest.main()
