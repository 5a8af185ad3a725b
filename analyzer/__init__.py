"""Analysis stages that turn frame descriptions and narration into a block graph."""

from .schema import (
    # Closed enums
    BlockIntent,
    SourceType,
    UpdateRule,
    # Stage artifacts
    FrameDescription,
    TranscriptEvent,
    RawExtraction,
    OrderedStep,
    OrganizedWorkflow,
    Block,
    Source,
    Connection,
    BlockStructure,
    # Workflow record
    PipelineStage,
    WorkflowRecord,
    WorkflowStatus,
)
from .structured import StructuredGenerator
from .transcript_synthesizer import TranscriptSynthesizer
from .step_organizer import StepOrganizer
from .block_generator import BlockGraphGenerator

__all__ = [
    "BlockIntent",
    "SourceType",
    "UpdateRule",
    "FrameDescription",
    "TranscriptEvent",
    "RawExtraction",
    "OrderedStep",
    "OrganizedWorkflow",
    "Block",
    "Source",
    "Connection",
    "BlockStructure",
    "PipelineStage",
    "WorkflowRecord",
    "WorkflowStatus",
    # Stages
    "StructuredGenerator",
    "TranscriptSynthesizer",
    "StepOrganizer",
    "BlockGraphGenerator",
]
