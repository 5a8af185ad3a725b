"""Exception types raised across the workflow capture pipeline."""


class WorkflowPipelineError(Exception):
    """Base class for all pipeline errors."""


class VideoValidationError(WorkflowPipelineError):
    """The video is missing, in the wrong format, or too large."""


class FrameExtractionError(WorkflowPipelineError):
    """The encoder failed or produced no frame files."""


class AudioExtractionError(WorkflowPipelineError):
    """The audio track could not be extracted."""


class StructuredOutputError(WorkflowPipelineError, ValueError):
    """A generation call did not return a single well-formed structured block."""

    def __init__(self, message: str, response_text: str | None = None):
        super().__init__(message)
        self.response_text = response_text


class ArtifactOrderError(WorkflowPipelineError):
    """An artifact was written before the artifact of the preceding stage."""


class WorkflowNotFoundError(WorkflowPipelineError, KeyError):
    """No workflow exists with the requested id."""

    def __init__(self, workflow_id: int):
        super().__init__(workflow_id)
        self.workflow_id = workflow_id

    def __str__(self) -> str:
        return f"Workflow not found: {self.workflow_id}"


class PipelineBusyError(WorkflowPipelineError):
    """Processing was requested for a workflow that is already processing."""


class PipelineCancelled(WorkflowPipelineError):
    """The run was cancelled at a stage boundary."""


class UploadError(WorkflowPipelineError):
    """An upload session or chunk was malformed."""
