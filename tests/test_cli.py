#!/usr/bin/env python3
"""
Tests for the command line entry point.

The translation client is replaced by a fake so no request leaves the test.
"""
import io
import os
import sys
import tempfile
import unittest
from contextlib import redirect_stdout
from pathlib import Path
from unittest.mock import patch

# Add parent directory to path for module import
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from xml_translator.cli import EXIT_FAILURE, EXIT_OK, explain, main, parse_targets
from xml_translator.translation_client import TranslatedItem, TranslationResponse

SOURCE_XML = """<?xml version="1.0" encoding="utf-8"?>
<resources>
    <string name="hello">Hello</string>
    <string name="bye">Bye</string>
    <string name="secret" translatable="false">Keep</string>
</resources>
"""


class EchoTranslationClient:
    """Prefixes every text with the target language."""

    def __init__(self, *args, **kwargs):
        pass

    def translate(self, request, credential):
        return TranslationResponse(
            tuple(
                TranslatedItem(item.id, f"[{request.target_language}] {item.text}")
                for item in request.strings
            )
        )


class TestHelpers(unittest.TestCase):

    def test_parse_targets(self):
        self.assertEqual(
            parse_targets(["es,fr", "values-fr", " de "]),
            ["values-es", "values-fr", "values-de"],
        )
        self.assertEqual(parse_targets([]), [])

    def test_explain(self):
        text = explain("values-night")
        self.assertIn("values-night as folder: excluded", text)
        self.assertIn("-night", text)

        text = explain("app_name")
        self.assertIn("app_name as string name: kept", text)


@patch.dict(os.environ, {}, clear=True)
class TestMain(unittest.TestCase):

    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.res = Path(self.temp_dir.name) / "res"
        self.source = self.res / "values" / "strings.xml"
        self.source.parent.mkdir(parents=True)
        self.source.write_text(SOURCE_XML, encoding="utf-8")

    def tearDown(self):
        self.temp_dir.cleanup()

    def run_main(self, argv):
        output = io.StringIO()
        with redirect_stdout(output):
            code = main(argv)
        return code, output.getvalue()

    def test_explain_exits_cleanly(self):
        code, output = self.run_main(["--explain", "title-land"])
        self.assertEqual(code, EXIT_OK)
        self.assertIn("excluded", output)

    def test_dry_run(self):
        code, output = self.run_main([str(self.source), "-t", "es", "--dry-run"])
        self.assertEqual(code, EXIT_OK)
        self.assertIn("2 strings in 1 batches", output)
        self.assertIn("values-es: Spanish", output)
        self.assertFalse((self.res / "values-es").exists())

    def test_no_keys(self):
        with self.assertLogs(level="ERROR"):
            code, _ = self.run_main([str(self.source), "-t", "es", "--no-default-keys"])
        self.assertEqual(code, EXIT_FAILURE)

    def test_single_key_needs_sequential(self):
        with self.assertLogs(level="ERROR"):
            code, _ = self.run_main(
                [str(self.source), "-t", "es", "-t", "fr", "--api-key", "only-key", "--no-default-keys"]
            )
        self.assertEqual(code, EXIT_FAILURE)
        self.assertFalse((self.res / "values-es").exists())

    @patch("xml_translator.cli.TranslationClient", EchoTranslationClient)
    def test_undecodable_source(self):
        self.source.write_bytes(b"<resources>\xff\xfe</resources>")
        with self.assertLogs(level="ERROR") as logs:
            code, _ = self.run_main(
                [str(self.source), "-t", "es", "--api-key", "key-1", "--no-default-keys"]
            )
        self.assertEqual(code, EXIT_FAILURE)
        self.assertIn("UTF-8", "\n".join(logs.output))
        self.assertFalse((self.res / "values-es").exists())

    @patch("xml_translator.cli.TranslationClient", EchoTranslationClient)
    def test_translate_run(self):
        code, output = self.run_main(
            [
                str(self.source),
                "-t", "es,fr",
                "--api-key", "key-1",
                "--api-key", "key-2",
                "--no-default-keys",
            ]
        )
        self.assertEqual(code, EXIT_OK)
        self.assertIn("# Translation Report", output)

        spanish = (self.res / "values-es" / "strings.xml").read_text(encoding="utf-8")
        self.assertIn('<string name="hello">[es] Hello</string>', spanish)
        self.assertIn('<string name="bye">[es] Bye</string>', spanish)
        self.assertNotIn("secret", spanish)
        french = (self.res / "values-fr" / "strings.xml").read_text(encoding="utf-8")
        self.assertIn('<string name="hello">[fr] Hello</string>', french)

    @patch("xml_translator.cli.TranslationClient", EchoTranslationClient)
    def test_add_string(self):
        with patch("xml_translator.batch_orchestrator.BatchOrchestrator._pause"):
            code, _ = self.run_main(
                [
                    "--res-dir", str(self.res),
                    "--add-string", "welcome", "Welcome",
                    "-t", "vi",
                    "--api-key", "key-1",
                    "--no-default-keys",
                ]
            )
        self.assertEqual(code, EXIT_OK)
        source = self.source.read_text(encoding="utf-8")
        self.assertIn('<string name="welcome">Welcome</string>', source)
        self.assertIn('<string name="secret" translatable="false">Keep</string>', source)
        vietnamese = (self.res / "values-vi" / "strings.xml").read_text(encoding="utf-8")
        self.assertIn('<string name="welcome">[vi] Welcome</string>', vietnamese)


if __name__ == "__main__":
    unittest.main()
