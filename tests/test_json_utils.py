"""
Unit tests for pulling structured blocks out of model replies.
"""

import unittest

from analyzer.json_utils import extract_json_block
from errors import StructuredOutputError


class TestExtractJsonBlock(unittest.TestCase):
    """Test strict extraction."""

    def test_fenced_block(self):
        """A fenced json block surrounded by prose is extracted."""
        text = 'Sure!\n```json\n{"steps": [1, 2]}\n```\nLet me know.'
        self.assertEqual(extract_json_block(text), {"steps": [1, 2]})

    def test_bare_fence(self):
        """Fences without a language tag are accepted."""
        self.assertEqual(extract_json_block('```\n{"a": 1}\n```'), {"a": 1})

    def test_unfenced_object(self):
        """Without fences, the outermost braces are used."""
        self.assertEqual(extract_json_block('Result: {"a": {"b": 2}} done'), {"a": {"b": 2}})

    def test_array(self):
        """Arrays are extracted when requested."""
        self.assertEqual(extract_json_block("[1, 2, 3]", json_type="array"), [1, 2, 3])

    def test_empty_response(self):
        """Empty replies are an error."""
        with self.assertRaises(StructuredOutputError):
            extract_json_block("   ")

    def test_no_block(self):
        """Replies with no JSON at all are an error."""
        with self.assertRaises(StructuredOutputError):
            extract_json_block("I could not find any workflow in this video.")

    def test_two_blocks(self):
        """More than one fenced block is ambiguous and rejected."""
        text = '```json\n{"a": 1}\n```\nand\n```json\n{"b": 2}\n```'
        with self.assertRaises(StructuredOutputError):
            extract_json_block(text)

    def test_malformed(self):
        """Broken JSON is an error that keeps the response text."""
        with self.assertRaises(StructuredOutputError) as ctx:
            extract_json_block('```json\n{"a": 1,,}\n```')
        self.assertIn('"a": 1', ctx.exception.response_text)

    def test_wrong_type(self):
        """An array where an object is expected is rejected."""
        with self.assertRaises(StructuredOutputError):
            extract_json_block("```json\n[1, 2]\n```", json_type="object")

    def test_structured_error_is_value_error(self):
        """Callers catching ValueError also see parse failures."""
        with self.assertRaises(ValueError):
            extract_json_block("nothing here")


if __name__ == "__main__":
    unittest.main()
