#!/usr/bin/env python3
"""
Tests for string resource escaping.

Covers ampersands, apostrophes, control characters, markup preservation and
the reverse operation.
"""
import os
import sys
import unittest

# Add parent directory to path for module import
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from xml_translator.string_utils import (
    escape,
    escape_ampersands,
    escape_apostrophes,
    escape_control_chars,
    unescape,
)


class TestEscape(unittest.TestCase):
    """Tests for escape() and its building blocks."""

    def test_bare_ampersand_is_escaped(self):
        self.assertEqual(escape("Tom & Jerry"), "Tom &amp; Jerry")

    def test_existing_entities_are_kept(self):
        for text in ("Tom &amp; Jerry", "a &lt; b", "&#39;quoted&#39;"):
            with self.subTest(text=text):
                self.assertEqual(escape_ampersands(text), text)

    def test_apostrophes(self):
        self.assertEqual(escape("Don't stop"), "Don\\'t stop")
        # Already escaped apostrophes stay as they are
        self.assertEqual(escape("Don\\'t stop"), "Don\\'t stop")
        # An escaped backslash before the apostrophe does not escape it
        self.assertEqual(escape_apostrophes("C:\\\\'x"), "C:\\\\\\'x")

    def test_control_characters(self):
        self.assertEqual(escape("Line1\nLine2\tEnd\r"), "Line1\\nLine2\\tEnd\\r")
        self.assertEqual(escape_control_chars("no controls"), "no controls")

    def test_markup_is_preserved(self):
        text = 'Click <font color="#007AFF"><b>Allow</b></font> to continue'
        self.assertEqual(escape(text), text)

    def test_apostrophes_inside_tags_are_not_escaped(self):
        text = "<font color='red'>It's</font>"
        self.assertEqual(escape(text), "<font color=\"red\">It\\'s</font>")

    def test_empty_values(self):
        self.assertEqual(escape(""), "")
        self.assertIsNone(escape(None))
        self.assertIsNone(unescape(None))


class TestUnescape(unittest.TestCase):
    """Tests for unescape()."""

    def test_unescape_tokens(self):
        self.assertEqual(unescape("Line1\\nDon\\'t &amp; go"), "Line1\nDon't & go")

    def test_round_trip_plain_text(self):
        for text in ("Don't stop\nNow & then", "Tabs\tand\rreturns", "Plain"):
            with self.subTest(text=text):
                self.assertEqual(unescape(escape(text)), text)


if __name__ == "__main__":
    unittest.main()
