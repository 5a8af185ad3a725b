"""Workflow store: the record of truth for workflow state and staged artifacts."""

import copy
import itertools
import threading
from abc import ABC, abstractmethod

from analyzer.schema import (
    BlockStructure,
    OrganizedWorkflow,
    PipelineStage,
    RawExtraction,
    WorkflowRecord,
    WorkflowStatus,
)
from errors import ArtifactOrderError, WorkflowNotFoundError


class WorkflowStore(ABC):
    """Keyed repository of workflow records.

    Artifact writes are checked against stage order, so a stored record can
    never hold a block structure without an organized workflow, or an
    organized workflow without a raw extraction.
    """

    @abstractmethod
    def create(self, title: str, video_ref: str) -> WorkflowRecord:
        """Register a new workflow in ``pending`` status."""

    @abstractmethod
    def get(self, workflow_id: int) -> WorkflowRecord:
        """Return a snapshot of a workflow.

        Raises:
            WorkflowNotFoundError: If no workflow has this id.
        """

    @abstractmethod
    def list(self) -> list[WorkflowRecord]:
        """Return snapshots of all workflows, oldest first."""

    @abstractmethod
    def update_status(
        self,
        workflow_id: int,
        status: WorkflowStatus,
        stage: PipelineStage | None = None,
        error: str | None = None,
    ) -> WorkflowRecord:
        """Set status (and optionally stage); ``error`` replaces any previous error."""

    @abstractmethod
    def set_stage(self, workflow_id: int, stage: PipelineStage) -> WorkflowRecord:
        """Record which stage is running."""

    @abstractmethod
    def save_raw_extraction(self, workflow_id: int, raw: RawExtraction) -> WorkflowRecord:
        """Write the first-stage artifact."""

    @abstractmethod
    def save_organized_workflow(self, workflow_id: int, organized: OrganizedWorkflow) -> WorkflowRecord:
        """Write the second-stage artifact; requires a raw extraction."""

    @abstractmethod
    def save_block_structure(self, workflow_id: int, structure: BlockStructure) -> WorkflowRecord:
        """Write or replace the block graph; requires an organized workflow."""

    @abstractmethod
    def reset_artifacts(self, workflow_id: int) -> WorkflowRecord:
        """Clear all staged artifacts ahead of a full re-run."""


class InMemoryWorkflowStore(WorkflowStore):
    """Thread-safe in-process store.

    Records are copied on the way in and out so callers never share mutable
    state with the store.
    """

    def __init__(self):
        self._records: dict[int, WorkflowRecord] = {}
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def _require(self, workflow_id: int) -> WorkflowRecord:
        record = self._records.get(workflow_id)
        if record is None:
            raise WorkflowNotFoundError(workflow_id)
        return record

    def create(self, title: str, video_ref: str) -> WorkflowRecord:
        with self._lock:
            record = WorkflowRecord(
                id=next(self._ids),
                title=title or "Untitled Workflow",
                video_ref=video_ref,
            )
            self._records[record.id] = record
            return copy.deepcopy(record)

    def get(self, workflow_id: int) -> WorkflowRecord:
        with self._lock:
            return copy.deepcopy(self._require(workflow_id))

    def list(self) -> list[WorkflowRecord]:
        with self._lock:
            return [copy.deepcopy(r) for r in sorted(self._records.values(), key=lambda r: r.id)]

    def update_status(
        self,
        workflow_id: int,
        status: WorkflowStatus,
        stage: PipelineStage | None = None,
        error: str | None = None,
    ) -> WorkflowRecord:
        with self._lock:
            record = self._require(workflow_id)
            record.status = status
            if stage is not None:
                record.current_stage = stage
            record.error = error
            record.touch()
            return copy.deepcopy(record)

    def set_stage(self, workflow_id: int, stage: PipelineStage) -> WorkflowRecord:
        with self._lock:
            record = self._require(workflow_id)
            record.current_stage = stage
            record.touch()
            return copy.deepcopy(record)

    def save_raw_extraction(self, workflow_id: int, raw: RawExtraction) -> WorkflowRecord:
        with self._lock:
            record = self._require(workflow_id)
            record.raw_extraction = copy.deepcopy(raw)
            record.touch()
            return copy.deepcopy(record)

    def save_organized_workflow(self, workflow_id: int, organized: OrganizedWorkflow) -> WorkflowRecord:
        with self._lock:
            record = self._require(workflow_id)
            if record.raw_extraction is None:
                raise ArtifactOrderError(
                    f"Workflow {workflow_id} has no raw extraction; cannot store organized workflow"
                )
            record.organized_workflow = copy.deepcopy(organized)
            record.touch()
            return copy.deepcopy(record)

    def save_block_structure(self, workflow_id: int, structure: BlockStructure) -> WorkflowRecord:
        with self._lock:
            record = self._require(workflow_id)
            if record.organized_workflow is None:
                raise ArtifactOrderError(
                    f"Workflow {workflow_id} has no organized workflow; cannot store block structure"
                )
            record.block_structure = copy.deepcopy(structure)
            record.touch()
            return copy.deepcopy(record)

    def reset_artifacts(self, workflow_id: int) -> WorkflowRecord:
        with self._lock:
            record = self._require(workflow_id)
            record.raw_extraction = None
            record.organized_workflow = None
            record.block_structure = None
            record.error = None
            record.touch()
            return copy.deepcopy(record)
