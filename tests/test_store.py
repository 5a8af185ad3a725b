"""
Unit tests for the workflow store and the derived progress view.
"""

import unittest

from analyzer.schema import (
    BlockStructure,
    OrganizedWorkflow,
    PipelineStage,
    RawExtraction,
    WorkflowStatus,
)
from errors import ArtifactOrderError, WorkflowNotFoundError
from fakes import SAMPLE_BLOCKS, SAMPLE_ORGANIZED, SAMPLE_TRANSCRIPT
from pipeline.progress import compute_status
from pipeline.store import InMemoryWorkflowStore

RAW = RawExtraction.from_dict(SAMPLE_TRANSCRIPT)
ORGANIZED = OrganizedWorkflow.from_dict(SAMPLE_ORGANIZED)
BLOCKS = BlockStructure.from_dict(SAMPLE_BLOCKS)


class TestInMemoryWorkflowStore(unittest.TestCase):
    """Test record storage."""

    def setUp(self):
        self.store = InMemoryWorkflowStore()

    def test_create_assigns_ids(self):
        """New workflows get increasing ids and start pending."""
        first = self.store.create("One", "a.mp4")
        second = self.store.create("", "b.mp4")
        self.assertEqual((first.id, second.id), (1, 2))
        self.assertEqual(first.status, WorkflowStatus.PENDING)
        self.assertEqual(second.title, "Untitled Workflow")
        self.assertEqual([r.id for r in self.store.list()], [1, 2])

    def test_unknown_id(self):
        """Unknown ids raise WorkflowNotFoundError."""
        with self.assertRaises(WorkflowNotFoundError):
            self.store.get(99)
        with self.assertRaises(KeyError):
            self.store.update_status(99, WorkflowStatus.FAILED)

    def test_snapshots_are_isolated(self):
        """Mutating a returned record does not change the store."""
        record = self.store.create("One", "a.mp4")
        record.title = "Changed"
        self.assertEqual(self.store.get(record.id).title, "One")

    def test_artifacts_in_stage_order(self):
        """Artifacts can be written in stage order."""
        wid = self.store.create("One", "a.mp4").id
        self.store.save_raw_extraction(wid, RAW)
        self.store.save_organized_workflow(wid, ORGANIZED)
        record = self.store.save_block_structure(wid, BLOCKS)
        self.assertIsNotNone(record.block_structure)

    def test_organized_requires_raw(self):
        """An organized workflow cannot precede the raw extraction."""
        wid = self.store.create("One", "a.mp4").id
        with self.assertRaises(ArtifactOrderError):
            self.store.save_organized_workflow(wid, ORGANIZED)
        self.assertIsNone(self.store.get(wid).organized_workflow)

    def test_blocks_require_organized(self):
        """A block structure cannot precede the organized workflow."""
        wid = self.store.create("One", "a.mp4").id
        self.store.save_raw_extraction(wid, RAW)
        with self.assertRaises(ArtifactOrderError):
            self.store.save_block_structure(wid, BLOCKS)

    def test_reset_artifacts(self):
        """Resetting clears every artifact and the error."""
        wid = self.store.create("One", "a.mp4").id
        self.store.save_raw_extraction(wid, RAW)
        self.store.update_status(wid, WorkflowStatus.FAILED, error="boom")
        record = self.store.reset_artifacts(wid)
        self.assertIsNone(record.raw_extraction)
        self.assertIsNone(record.error)

    def test_update_status_keeps_stage(self):
        """Status updates without a stage keep the current one."""
        wid = self.store.create("One", "a.mp4").id
        self.store.set_stage(wid, PipelineStage.ORGANIZATION)
        record = self.store.update_status(wid, WorkflowStatus.FAILED, error="boom")
        self.assertEqual(record.current_stage, PipelineStage.ORGANIZATION)
        self.assertEqual(record.error, "boom")


class TestComputeStatus(unittest.TestCase):
    """Test progress derived from status and artifacts."""

    def setUp(self):
        self.store = InMemoryWorkflowStore()
        self.wid = self.store.create("One", "a.mp4").id

    def _status(self):
        return compute_status(self.store.get(self.wid)).to_dict()

    def test_pending(self):
        """Pending workflows report zero progress and no ETA."""
        status = self._status()
        self.assertEqual(status["progress"]["overall"], 0)
        self.assertNotIn("estimatedTimeRemaining", status)

    def test_processing_progression(self):
        """Progress and ETA follow artifact writes; overall never decreases."""
        self.store.update_status(self.wid, WorkflowStatus.PROCESSING)
        seen = []

        status = self._status()
        self.assertEqual(status["progress"], {
            "videoProcessing": 100, "rawExtraction": 50, "organization": 0,
            "blockGeneration": 0, "overall": 25,
        })
        self.assertEqual(status["estimatedTimeRemaining"], 75)
        seen.append(status["progress"]["overall"])

        self.store.save_raw_extraction(self.wid, RAW)
        seen.append(self._status()["progress"]["overall"])
        self.store.save_organized_workflow(self.wid, ORGANIZED)
        seen.append(self._status()["progress"]["overall"])
        self.store.save_block_structure(self.wid, BLOCKS)
        status = self._status()
        seen.append(status["progress"]["overall"])
        self.assertNotIn("estimatedTimeRemaining", status)

        self.store.update_status(self.wid, WorkflowStatus.COMPLETED, PipelineStage.DONE)
        seen.append(self._status()["progress"]["overall"])

        self.assertEqual(seen, [25, 55, 85, 100, 100])

    def test_failed_before_first_artifact(self):
        """Failing before synthesis reports video processing at 50."""
        self.store.update_status(self.wid, WorkflowStatus.FAILED, error="bad video")
        status = self._status()
        self.assertEqual(status["progress"]["videoProcessing"], 50)
        self.assertEqual(status["progress"]["overall"], 5)
        self.assertEqual(status["error"], "bad video")
        self.assertNotIn("estimatedTimeRemaining", status)

    def test_failed_after_raw(self):
        """Failing after synthesis reports the first two stages done."""
        self.store.save_raw_extraction(self.wid, RAW)
        self.store.update_status(self.wid, WorkflowStatus.FAILED)
        self.assertEqual(self._status()["progress"]["overall"], 40)

    def test_current_stage_reported(self):
        """The status view includes the current stage."""
        self.store.update_status(self.wid, WorkflowStatus.PROCESSING, PipelineStage.RAW_EXTRACTION)
        self.assertEqual(self._status()["currentStage"], "raw_extraction")


if __name__ == "__main__":
    unittest.main()
