"""Pipeline module: storage, progress and orchestration of workflow processing.

This module provides:
- BlobStore / LocalBlobStore: Video storage with resumable chunked uploads
- WorkflowStore / InMemoryWorkflowStore: Workflow records and staged artifacts
- compute_status: Derived progress and ETA view
- PipelineOrchestrator: Runs the processing stages per workflow
"""

from .blob_store import BlobStore, LocalBlobStore, UploadSession, is_blob_ref
from .store import InMemoryWorkflowStore, WorkflowStore
from .progress import StageProgress, WorkflowStatusView, compute_status
from .orchestrator import PipelineOrchestrator

__all__ = [
    "BlobStore",
    "LocalBlobStore",
    "UploadSession",
    "is_blob_ref",
    "WorkflowStore",
    "InMemoryWorkflowStore",
    "StageProgress",
    "WorkflowStatusView",
    "compute_status",
    "PipelineOrchestrator",
]
