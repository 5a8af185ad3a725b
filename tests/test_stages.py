"""
Unit tests for the three generation stages.

Model replies are scripted, so these exercise prompt assembly and the
parse-or-fail contract without network access.
"""

import copy
import unittest

from analyzer.block_generator import BlockGraphGenerator
from analyzer.schema import (
    BlockIntent,
    FrameDescription,
    OrganizedWorkflow,
    RawExtraction,
    SourceType,
    UpdateRule,
)
from analyzer.step_organizer import StepOrganizer
from analyzer.structured import StructuredGenerator
from analyzer.transcript_synthesizer import TranscriptSynthesizer
from errors import StructuredOutputError
from fakes import SAMPLE_BLOCKS, SAMPLE_ORGANIZED, SAMPLE_TRANSCRIPT, ScriptedLLMClient, fenced


FRAMES = [
    FrameDescription(index=0, timestamp=0.0, description="Excel open on sales.xlsx"),
    FrameDescription(index=1, timestamp=1.0, description="Column B selected"),
    FrameDescription(index=2, timestamp=2.0, description="Gmail compose window"),
]


def _generator(*replies):
    client = ScriptedLLMClient(replies)
    return StructuredGenerator(client, "test-model", timeout=30), client


class TestStructuredGenerator(unittest.TestCase):
    """Test the structured-generation port."""

    def test_sends_context_and_schema(self):
        """The context and the schema are sent as separate text blocks."""
        generator, client = _generator(fenced({"ok": True}))
        result = generator.generate("Do the task", {"ok": "boolean"}, "CONTEXT", stage="synthesis")

        self.assertEqual(result, {"ok": True})
        call = client.calls[0]
        self.assertEqual(call["system_prompt"], "Do the task")
        self.assertEqual(call["content"][0]["text"], "CONTEXT")
        self.assertIn('"ok": "boolean"', call["content"][1]["text"])
        self.assertEqual(call["stage"], "synthesis")
        self.assertEqual(call["timeout"], 30)


class TestTranscriptSynthesizer(unittest.TestCase):
    """Test raw transcript synthesis."""

    def test_transcript_with_narration(self):
        """Every event has a screen and an action, in time order."""
        payload = copy.deepcopy(SAMPLE_TRANSCRIPT)
        payload["transcript"].reverse()
        for event in payload["transcript"]:
            event["narration"] = "I send these every Monday"
        generator, client = _generator(fenced(payload))

        raw = TranscriptSynthesizer(generator).synthesize(FRAMES, "I send these every Monday")

        self.assertEqual([e.time for e in raw.transcript], [0.0, 1.0, 2.0])
        for event in raw.transcript:
            self.assertTrue(event.screen)
            self.assertTrue(event.action)
        context = client.calls[0]["content"][0]["text"]
        self.assertIn("[1.0s] Frame 2: Column B selected", context)
        self.assertIn("I send these every Monday", context)

    def test_without_narration_uses_visual_action(self):
        """With no narration, narration fields restate the visual action."""
        generator, client = _generator(fenced(SAMPLE_TRANSCRIPT))

        raw = TranscriptSynthesizer(generator).synthesize(FRAMES, "")

        for event in raw.transcript:
            self.assertEqual(event.narration, event.action)
        self.assertIn("No narration is available", client.calls[0]["content"][0]["text"])

    def test_incomplete_events_dropped(self):
        """Events missing a screen or an action are discarded."""
        payload = {"transcript": [
            {"time": 0, "screen": "", "action": "Clicks"},
            {"time": 1, "screen": "Excel", "action": "Types"},
        ]}
        generator, _ = _generator(fenced(payload))
        raw = TranscriptSynthesizer(generator).synthesize(FRAMES)
        self.assertEqual(len(raw.transcript), 1)

    def test_unparsable_output_is_fatal(self):
        """Prose without a structured block fails the stage."""
        generator, _ = _generator("Sorry, I cannot help with that.")
        with self.assertRaises(StructuredOutputError):
            TranscriptSynthesizer(generator).synthesize(FRAMES)

    def test_empty_transcript_is_fatal(self):
        """A transcript with no complete events fails the stage."""
        generator, _ = _generator(fenced({"transcript": []}))
        with self.assertRaises(StructuredOutputError):
            TranscriptSynthesizer(generator).synthesize(FRAMES)

    def test_requires_frames(self):
        """Synthesis needs at least one frame description."""
        generator, _ = _generator()
        with self.assertRaises(ValueError):
            TranscriptSynthesizer(generator).synthesize([])


class TestStepOrganizer(unittest.TestCase):
    """Test step organization."""

    def test_organize(self):
        """Steps are parsed and numbered densely."""
        payload = copy.deepcopy(SAMPLE_ORGANIZED)
        payload["steps"][0]["number"] = 4
        payload["steps"][1]["number"] = 9
        generator, client = _generator(fenced(payload))

        organized = StepOrganizer(generator).organize(RawExtraction.from_dict(SAMPLE_TRANSCRIPT))

        self.assertEqual([s.number for s in organized.steps], [1, 2])
        self.assertEqual(organized.frequency, "weekly")
        self.assertIn("Selects column B", client.calls[0]["content"][0]["text"])

    def test_missing_steps_is_fatal(self):
        """A reply without a steps list fails the stage."""
        generator, _ = _generator(fenced({"patterns": []}))
        with self.assertRaises(StructuredOutputError):
            StepOrganizer(generator).organize(RawExtraction.from_dict(SAMPLE_TRANSCRIPT))

    def test_no_steps_is_fatal(self):
        """An empty steps list fails the stage."""
        generator, _ = _generator(fenced({"steps": []}))
        with self.assertRaises(StructuredOutputError):
            StepOrganizer(generator).organize(RawExtraction.from_dict(SAMPLE_TRANSCRIPT))


class TestBlockGraphGenerator(unittest.TestCase):
    """Test block graph generation and post-generation repair."""

    def _generate(self, payload):
        generator, _ = _generator(fenced(payload))
        return BlockGraphGenerator(generator).generate(OrganizedWorkflow.from_dict(SAMPLE_ORGANIZED))

    def test_valid_graph(self):
        """A well-formed reply is parsed as-is."""
        structure = self._generate(SAMPLE_BLOCKS)
        self.assertEqual([b.intent for b in structure.blocks], [BlockIntent.EXTRACT, BlockIntent.COMMUNICATE])
        self.assertEqual(structure.sources[0].update_rules, UpdateRule.ON_SOURCE_CHANGE)

    def test_weird_update_rule_coerced(self):
        """A connection rule outside the closed set is stored as manual."""
        payload = copy.deepcopy(SAMPLE_BLOCKS)
        payload["connections"][0]["updateRules"] = "weird"
        structure = self._generate(payload)
        self.assertEqual(structure.connections[0].update_rules, UpdateRule.MANUAL)

    def test_all_enums_closed(self):
        """Invalid intent, source type and source rule all fall back to defaults."""
        payload = copy.deepcopy(SAMPLE_BLOCKS)
        payload["blocks"][0]["intent"] = "summon"
        payload["sources"][0]["type"] = "carrier pigeon"
        payload["sources"][0]["updateRules"] = "sometimes"
        structure = self._generate(payload)
        self.assertEqual(structure.blocks[0].intent, BlockIntent.UNKNOWN)
        self.assertEqual(structure.sources[0].type, SourceType.FILE)
        self.assertEqual(structure.sources[0].update_rules, UpdateRule.MANUAL)

    def test_dangling_connection_dropped(self):
        """Connections to blocks that were not generated are removed."""
        payload = copy.deepcopy(SAMPLE_BLOCKS)
        payload["connections"].append({"sourceBlockId": "b2", "targetBlockId": "b9"})
        structure = self._generate(payload)
        self.assertEqual(len(structure.connections), 1)

    def test_source_ids_repaired(self):
        """Generated sources always end up with unique ids."""
        payload = copy.deepcopy(SAMPLE_BLOCKS)
        payload["sources"] = [
            {"id": "s1", "type": "file"},
            {"id": "s1", "type": "web"},
            {"type": "api"},
        ]
        structure = self._generate(payload)
        ids = [s.id for s in structure.sources]
        self.assertEqual(len(set(ids)), 3)
        self.assertNotIn("", ids)

    def test_missing_blocks_is_fatal(self):
        """A reply without a blocks list fails the stage."""
        with self.assertRaises(StructuredOutputError):
            self._generate({"connections": []})

    def test_non_list_connections_is_fatal(self):
        """A connections value that is not a list fails the stage."""
        with self.assertRaises(StructuredOutputError):
            self._generate({"blocks": [], "connections": "b1->b2"})


if __name__ == "__main__":
    unittest.main()
