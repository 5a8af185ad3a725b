"""Derived progress and ETA view of a workflow."""

from dataclasses import dataclass

from analyzer.schema import WorkflowRecord, WorkflowStatus

# Stage weights for overall progress, in percent
STAGE_WEIGHTS = {
    "videoProcessing": 10,
    "rawExtraction": 30,
    "organization": 30,
    "blockGeneration": 30,
}

# Seconds of estimated work per remaining percentage point
SECONDS_PER_PERCENT = 1


@dataclass
class StageProgress:
    """Per-stage completion, each 0 (not started), 50 (running) or 100 (done)."""

    video_processing: int = 0
    raw_extraction: int = 0
    organization: int = 0
    block_generation: int = 0

    @property
    def overall(self) -> int:
        weighted = (
            self.video_processing * STAGE_WEIGHTS["videoProcessing"]
            + self.raw_extraction * STAGE_WEIGHTS["rawExtraction"]
            + self.organization * STAGE_WEIGHTS["organization"]
            + self.block_generation * STAGE_WEIGHTS["blockGeneration"]
        )
        return round(weighted / 100)

    def to_dict(self) -> dict:
        return {
            "videoProcessing": self.video_processing,
            "rawExtraction": self.raw_extraction,
            "organization": self.organization,
            "blockGeneration": self.block_generation,
            "overall": self.overall,
        }


@dataclass
class WorkflowStatusView:
    """What a status poll returns."""

    status: WorkflowStatus
    progress: StageProgress
    current_stage: str
    error: str | None = None
    estimated_time_remaining: int | None = None

    def to_dict(self) -> dict:
        d = {
            "status": self.status.value,
            "progress": self.progress.to_dict(),
            "currentStage": self.current_stage,
            "error": self.error,
        }
        if self.estimated_time_remaining is not None:
            d["estimatedTimeRemaining"] = self.estimated_time_remaining
        return d


def compute_progress(record: WorkflowRecord) -> StageProgress:
    """Infer stage progress from which artifacts are present.

    Only status and artifact presence are consulted, so the numbers are the
    same whether or not a store tracks the current stage.
    """
    has_raw = record.raw_extraction is not None
    has_organized = record.organized_workflow is not None
    has_blocks = record.block_structure is not None

    if record.status == WorkflowStatus.COMPLETED:
        return StageProgress(100, 100, 100, 100)

    if record.status == WorkflowStatus.FAILED:
        if has_blocks:
            return StageProgress(100, 100, 100, 50)
        if has_organized:
            return StageProgress(100, 100, 100, 0)
        if has_raw:
            return StageProgress(100, 100, 0, 0)
        # Failed before the first artifact was written
        return StageProgress(50, 0, 0, 0)

    if record.status == WorkflowStatus.PROCESSING:
        if not has_raw:
            return StageProgress(100, 50, 0, 0)
        if not has_organized:
            return StageProgress(100, 100, 50, 0)
        return StageProgress(100, 100, 100, 100 if has_blocks else 50)

    return StageProgress()


def compute_status(record: WorkflowRecord) -> WorkflowStatusView:
    """Build the status view polled by clients."""
    progress = compute_progress(record)

    eta = None
    if record.status == WorkflowStatus.PROCESSING and progress.overall < 100:
        eta = (100 - progress.overall) * SECONDS_PER_PERCENT

    return WorkflowStatusView(
        status=record.status,
        progress=progress,
        current_stage=record.current_stage.value,
        error=record.error,
        estimated_time_remaining=eta,
    )
