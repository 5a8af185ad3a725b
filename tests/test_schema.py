"""
Unit tests for workflow artifacts and enum coercion.
"""

import tempfile
import unittest
from pathlib import Path

from analyzer.schema import (
    Block,
    BlockIntent,
    BlockStructure,
    Connection,
    OrganizedWorkflow,
    PipelineStage,
    RawExtraction,
    Source,
    SourceType,
    UpdateRule,
    WorkflowRecord,
    WorkflowStatus,
    coerce_enum,
)
from fakes import SAMPLE_BLOCKS, SAMPLE_ORGANIZED, SAMPLE_TRANSCRIPT


class TestCoerceEnum(unittest.TestCase):
    """Test closed-enum coercion."""

    def test_exact_value(self):
        """Known values map to their member."""
        self.assertEqual(coerce_enum(UpdateRule, "onEvent", UpdateRule.MANUAL), UpdateRule.ON_EVENT)

    def test_case_insensitive(self):
        """Case and surrounding whitespace are ignored."""
        self.assertEqual(coerce_enum(UpdateRule, " OnSourceChange ", UpdateRule.MANUAL), UpdateRule.ON_SOURCE_CHANGE)

    def test_unknown_value(self):
        """Unknown values fall back to the default."""
        self.assertEqual(coerce_enum(BlockIntent, "teleport", BlockIntent.UNKNOWN), BlockIntent.UNKNOWN)

    def test_non_string(self):
        """Non-string values fall back to the default."""
        self.assertEqual(coerce_enum(SourceType, 42, SourceType.FILE), SourceType.FILE)
        self.assertEqual(coerce_enum(SourceType, None, SourceType.FILE), SourceType.FILE)


class TestBlockStructureParsing(unittest.TestCase):
    """Every enum field has a documented default."""

    def test_block_intent_default(self):
        """Unknown intents become 'unknown'."""
        self.assertEqual(Block.from_dict({"id": "b", "intent": "dance"}).intent, BlockIntent.UNKNOWN)

    def test_source_defaults(self):
        """Unknown source types become 'file', unknown rules 'manual'."""
        source = Source.from_dict({"id": "s", "type": "ftp", "updateRules": "hourly"})
        self.assertEqual(source.type, SourceType.FILE)
        self.assertEqual(source.update_rules, UpdateRule.MANUAL)

    def test_connection_default(self):
        """Unknown connection rules become 'manual'."""
        conn = Connection.from_dict({"sourceBlockId": "a", "targetBlockId": "b", "updateRules": "weird"})
        self.assertEqual(conn.update_rules, UpdateRule.MANUAL)

    def test_camel_case_round_trip(self):
        """Serialized structures use camelCase keys."""
        structure = BlockStructure.from_dict(SAMPLE_BLOCKS)
        d = structure.to_dict()
        self.assertEqual(d["connections"][0]["sourceBlockId"], "b1")
        self.assertEqual(d["sources"][0]["updateRules"], "onSourceChange")
        self.assertEqual(structure.block_ids, {"b1", "b2"})

    def test_non_dict_entries_skipped(self):
        """Entries that are not objects are ignored."""
        structure = BlockStructure.from_dict({"blocks": ["oops", {"id": "b1"}], "connections": [None]})
        self.assertEqual([b.id for b in structure.blocks], ["b1"])
        self.assertEqual(structure.connections, [])


class TestOrganizedWorkflow(unittest.TestCase):
    """Test step numbering and application defaults."""

    def test_dense_numbering(self):
        """Steps are renumbered 1..n whatever numbers the model used."""
        data = {"steps": [{"number": 7, "action": "a"}, {"number": 7, "action": "b"}, {"action": "c"}]}
        organized = OrganizedWorkflow.from_dict(data)
        self.assertEqual([s.number for s in organized.steps], [1, 2, 3])

    def test_applications_never_empty(self):
        """A step without applications falls back to its primary application."""
        organized = OrganizedWorkflow.from_dict(
            {"steps": [{"action": "a", "primaryApplication": "Excel"}, {"action": "b"}]}
        )
        self.assertEqual(organized.steps[0].applications, ["Excel"])
        self.assertEqual(organized.steps[1].applications, ["Unknown application"])

    def test_markdown_has_frontmatter(self):
        """Markdown export starts with YAML front matter."""
        md = OrganizedWorkflow.from_dict(SAMPLE_ORGANIZED).to_markdown("Weekly report")
        self.assertTrue(md.startswith("---\n"))
        self.assertIn("frequency: weekly", md)
        self.assertIn("### 2. Email the figures", md)


class TestWorkflowRecord(unittest.TestCase):
    """Test record serialization."""

    def test_save_and_load(self):
        """A saved record loads back with its artifacts."""
        record = WorkflowRecord(id=3, title="Report", video_ref="blob://abc_video.mp4")
        record.status = WorkflowStatus.COMPLETED
        record.current_stage = PipelineStage.DONE
        record.raw_extraction = RawExtraction.from_dict(SAMPLE_TRANSCRIPT)
        record.organized_workflow = OrganizedWorkflow.from_dict(SAMPLE_ORGANIZED)
        record.block_structure = BlockStructure.from_dict(SAMPLE_BLOCKS)

        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "record.json"
            record.save(path)
            loaded = WorkflowRecord.load(path)

        self.assertEqual(loaded.to_dict(), record.to_dict())

    def test_empty_artifacts_serialize_as_null(self):
        """Missing artifacts are null on the wire."""
        d = WorkflowRecord(id=1, title="t", video_ref="v.mp4").to_dict()
        self.assertIsNone(d["rawExtraction"])
        self.assertIsNone(d["blockStructure"])
        self.assertEqual(d["status"], "pending")
        self.assertEqual(d["currentStage"], "queued")


if __name__ == "__main__":
    unittest.main()
