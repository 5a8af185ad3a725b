"""Data models for workflow records and their staged artifacts.

Every artifact serializes to the camelCase JSON shape used on the wire
(``rawExtraction``, ``organizedWorkflow``, ``blockStructure``). Fields typed
as a closed enum are coerced to a per-field default when parsed, so a
structure built through ``from_dict`` never holds an out-of-domain value.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import StrEnum
from pathlib import Path
from typing import Any, TypeVar

import yaml


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _as_str(value: Any, default: str = "") -> str:
    if value is None:
        return default
    return str(value).strip()


def _as_str_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value.strip()] if value.strip() else []
    if isinstance(value, (list, tuple)):
        return [str(v).strip() for v in value if v is not None and str(v).strip()]
    return [str(value)]


# =============================================================================
# Closed enums
# =============================================================================


class BlockIntent(StrEnum):
    """What a block does in the workflow."""

    EDIT = "edit"
    VIEW = "view"
    SEARCH = "search"
    GENERATE = "generate"
    INPUT = "input"
    EXTRACT = "extract"
    TRANSFER = "transfer"
    DECISION = "decision"
    COMMUNICATE = "communicate"
    UNKNOWN = "unknown"


class SourceType(StrEnum):
    """Where a data source lives."""

    FILE = "file"
    WEB = "web"
    API = "api"
    MANUAL = "manual"


class UpdateRule(StrEnum):
    """When downstream data is refreshed."""

    ON_SOURCE_CHANGE = "onSourceChange"
    MANUAL = "manual"
    SCHEDULED = "scheduled"
    ON_EVENT = "onEvent"


E = TypeVar("E", bound=StrEnum)


def coerce_enum(enum_cls: type[E], value: Any, default: E) -> E:
    """Map a raw value onto a closed enum, falling back to ``default``.

    Matching ignores surrounding whitespace and case.
    """
    if isinstance(value, enum_cls):
        return value
    if not isinstance(value, str):
        return default
    try:
        return enum_cls(value.strip())
    except ValueError:
        pass
    lowered = value.strip().lower()
    for member in enum_cls:
        if member.value.lower() == lowered:
            return member
    return default


# =============================================================================
# Stage 1: raw extraction
# =============================================================================


@dataclass
class FrameDescription:
    """A natural-language description of one sampled frame."""

    index: int
    timestamp: float  # Seconds from video start
    description: str

    def to_dict(self) -> dict:
        return {
            "index": self.index,
            "timestamp": self.timestamp,
            "description": self.description,
        }


@dataclass
class TranscriptEvent:
    """One discrete event in the chronological raw transcript."""

    time: float
    screen: str
    action: str
    narration: str = ""

    def to_dict(self) -> dict:
        return {
            "time": self.time,
            "screen": self.screen,
            "action": self.action,
            "narration": self.narration,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "TranscriptEvent":
        try:
            time = float(d.get("time", 0.0))
        except (TypeError, ValueError):
            time = 0.0
        return cls(
            time=max(time, 0.0),
            screen=_as_str(d.get("screen")),
            action=_as_str(d.get("action")),
            narration=_as_str(d.get("narration")),
        )


@dataclass
class RawExtraction:
    """Chronological list of workflow events."""

    transcript: list[TranscriptEvent] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"transcript": [e.to_dict() for e in self.transcript]}

    @classmethod
    def from_dict(cls, d: dict) -> "RawExtraction":
        return cls(
            transcript=[
                TranscriptEvent.from_dict(e)
                for e in d.get("transcript", [])
                if isinstance(e, dict)
            ],
        )


# =============================================================================
# Stage 2: organized workflow
# =============================================================================


@dataclass
class StepInput:
    data: str = ""
    source: str = ""

    def to_dict(self) -> dict:
        return {"data": self.data, "source": self.source}

    @classmethod
    def from_dict(cls, d: Any) -> "StepInput":
        if not isinstance(d, dict):
            return cls(data=_as_str(d))
        return cls(data=_as_str(d.get("data")), source=_as_str(d.get("source")))


@dataclass
class StepOutput:
    data: str = ""
    destination: str = ""

    def to_dict(self) -> dict:
        return {"data": self.data, "destination": self.destination}

    @classmethod
    def from_dict(cls, d: Any) -> "StepOutput":
        if not isinstance(d, dict):
            return cls(data=_as_str(d))
        return cls(data=_as_str(d.get("data")), destination=_as_str(d.get("destination")))


@dataclass
class OrderedStep:
    """A logical workflow step built from one or more raw events."""

    number: int
    action: str
    applications: list[str]
    input: StepInput = field(default_factory=StepInput)
    output: StepOutput = field(default_factory=StepOutput)
    considerations: list[str] = field(default_factory=list)
    primary_application: str | None = None

    def to_dict(self) -> dict:
        d = {
            "number": self.number,
            "action": self.action,
            "applications": list(self.applications),
            "input": self.input.to_dict(),
            "output": self.output.to_dict(),
            "considerations": list(self.considerations),
        }
        if self.primary_application:
            d["primaryApplication"] = self.primary_application
        return d

    @classmethod
    def from_dict(cls, d: dict, number: int | None = None) -> "OrderedStep":
        primary = _as_str(d.get("primaryApplication")) or None
        applications = _as_str_list(d.get("applications"))
        if not applications:
            applications = [primary or "Unknown application"]
        if number is None:
            try:
                number = int(d.get("number", 0))
            except (TypeError, ValueError):
                number = 0
        return cls(
            number=number,
            action=_as_str(d.get("action")),
            applications=applications,
            input=StepInput.from_dict(d.get("input") or {}),
            output=StepOutput.from_dict(d.get("output") or {}),
            considerations=_as_str_list(d.get("considerations")),
            primary_application=primary,
        )


@dataclass
class OrganizedWorkflow:
    """Logical steps plus workflow-level patterns, triggers and frequency."""

    steps: list[OrderedStep] = field(default_factory=list)
    patterns: list[str] = field(default_factory=list)
    conditional_logic: list[str] = field(default_factory=list)
    triggers: list[str] = field(default_factory=list)
    frequency: str = ""

    def to_dict(self) -> dict:
        return {
            "steps": [s.to_dict() for s in self.steps],
            "patterns": list(self.patterns),
            "conditionalLogic": list(self.conditional_logic),
            "triggers": list(self.triggers),
            "frequency": self.frequency,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "OrganizedWorkflow":
        """Parse an organized workflow, renumbering steps densely from 1."""
        raw_steps = [s for s in d.get("steps", []) if isinstance(s, dict)]
        return cls(
            steps=[OrderedStep.from_dict(s, number=i + 1) for i, s in enumerate(raw_steps)],
            patterns=_as_str_list(d.get("patterns")),
            conditional_logic=_as_str_list(d.get("conditionalLogic")),
            triggers=_as_str_list(d.get("triggers")),
            frequency=_as_str(d.get("frequency")),
        )

    def to_markdown(self, title: str = "Workflow") -> str:
        """Render as markdown with YAML frontmatter."""
        frontmatter = {
            "title": title,
            "frequency": self.frequency,
            "triggers": self.triggers,
            "patterns": self.patterns,
            "conditional_logic": self.conditional_logic,
        }
        yaml_str = yaml.dump(frontmatter, default_flow_style=False, sort_keys=False)

        lines = [f"# {title}\n", "\n## Steps\n"]
        for step in self.steps:
            lines.append(f"\n### {step.number}. {step.action}\n\n")
            lines.append(f"**Applications:** {', '.join(step.applications)}\n")
            if step.input.data:
                lines.append(f"**Input:** {step.input.data} (from {step.input.source or 'unspecified'})\n")
            if step.output.data:
                lines.append(
                    f"**Output:** {step.output.data} (to {step.output.destination or 'unspecified'})\n"
                )
            for note in step.considerations:
                lines.append(f"- {note}\n")

        return f"---\n{yaml_str}---\n\n{''.join(lines)}"


# =============================================================================
# Stage 3: block structure
# =============================================================================


@dataclass
class Block:
    """A node in the workflow graph: one action."""

    id: str
    intent: BlockIntent
    title: str
    description: str = ""
    properties: dict[str, Any] = field(default_factory=dict)
    application_name: str | None = None

    def to_dict(self) -> dict:
        d = {
            "id": self.id,
            "intent": self.intent.value,
            "title": self.title,
            "description": self.description,
            "properties": dict(self.properties),
        }
        if self.application_name:
            d["applicationName"] = self.application_name
        return d

    @classmethod
    def from_dict(cls, d: dict) -> "Block":
        properties = d.get("properties")
        return cls(
            id=_as_str(d.get("id")),
            intent=coerce_enum(BlockIntent, d.get("intent"), BlockIntent.UNKNOWN),
            title=_as_str(d.get("title")),
            description=_as_str(d.get("description")),
            properties=dict(properties) if isinstance(properties, dict) else {},
            application_name=_as_str(d.get("applicationName")) or None,
        )


@dataclass
class Source:
    """An external data source feeding the workflow."""

    id: str
    type: SourceType
    location: str
    update_rules: UpdateRule = UpdateRule.MANUAL

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type.value,
            "location": self.location,
            "updateRules": self.update_rules.value,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "Source":
        return cls(
            id=_as_str(d.get("id")),
            type=coerce_enum(SourceType, d.get("type"), SourceType.FILE),
            location=_as_str(d.get("location")),
            update_rules=coerce_enum(UpdateRule, d.get("updateRules"), UpdateRule.MANUAL),
        )


@dataclass
class Connection:
    """A directed data-flow edge between two blocks."""

    source_block_id: str
    target_block_id: str
    data_type: str = ""
    update_rules: UpdateRule = UpdateRule.MANUAL

    def to_dict(self) -> dict:
        return {
            "sourceBlockId": self.source_block_id,
            "targetBlockId": self.target_block_id,
            "dataType": self.data_type,
            "updateRules": self.update_rules.value,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "Connection":
        return cls(
            source_block_id=_as_str(d.get("sourceBlockId")),
            target_block_id=_as_str(d.get("targetBlockId")),
            data_type=_as_str(d.get("dataType")),
            update_rules=coerce_enum(UpdateRule, d.get("updateRules"), UpdateRule.MANUAL),
        )


@dataclass
class BlockStructure:
    """The editable workflow graph."""

    blocks: list[Block] = field(default_factory=list)
    sources: list[Source] = field(default_factory=list)
    connections: list[Connection] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "blocks": [b.to_dict() for b in self.blocks],
            "sources": [s.to_dict() for s in self.sources],
            "connections": [c.to_dict() for c in self.connections],
        }

    @classmethod
    def from_dict(cls, d: dict) -> "BlockStructure":
        return cls(
            blocks=[Block.from_dict(b) for b in d.get("blocks") or [] if isinstance(b, dict)],
            sources=[Source.from_dict(s) for s in d.get("sources") or [] if isinstance(s, dict)],
            connections=[
                Connection.from_dict(c)
                for c in d.get("connections") or []
                if isinstance(c, dict)
            ],
        )

    @property
    def block_ids(self) -> set[str]:
        return {b.id for b in self.blocks}


# =============================================================================
# Workflow record
# =============================================================================


class WorkflowStatus(StrEnum):
    """Lifecycle state of a workflow."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class PipelineStage(StrEnum):
    """The stage a workflow's pipeline is currently in."""

    QUEUED = "queued"
    VIDEO_PROCESSING = "video_processing"
    RAW_EXTRACTION = "raw_extraction"
    ORGANIZATION = "organization"
    BLOCK_GENERATION = "block_generation"
    DONE = "done"


@dataclass
class WorkflowRecord:
    """A workflow and its staged artifacts.

    Artifacts are filled strictly in stage order: a block structure implies an
    organized workflow, which implies a raw extraction.
    """

    id: int
    title: str
    video_ref: str
    status: WorkflowStatus = WorkflowStatus.PENDING
    current_stage: PipelineStage = PipelineStage.QUEUED
    error: str | None = None
    created_at: str = field(default_factory=_now)
    updated_at: str = field(default_factory=_now)
    raw_extraction: RawExtraction | None = None
    organized_workflow: OrganizedWorkflow | None = None
    block_structure: BlockStructure | None = None

    def touch(self) -> None:
        self.updated_at = _now()

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "videoRef": self.video_ref,
            "status": self.status.value,
            "currentStage": self.current_stage.value,
            "error": self.error,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "rawExtraction": self.raw_extraction.to_dict() if self.raw_extraction else None,
            "organizedWorkflow": (
                self.organized_workflow.to_dict() if self.organized_workflow else None
            ),
            "blockStructure": self.block_structure.to_dict() if self.block_structure else None,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "WorkflowRecord":
        raw = d.get("rawExtraction")
        organized = d.get("organizedWorkflow")
        blocks = d.get("blockStructure")
        return cls(
            id=int(d["id"]),
            title=d.get("title", "Untitled Workflow"),
            video_ref=d.get("videoRef", ""),
            status=coerce_enum(WorkflowStatus, d.get("status"), WorkflowStatus.PENDING),
            current_stage=coerce_enum(PipelineStage, d.get("currentStage"), PipelineStage.QUEUED),
            error=d.get("error"),
            created_at=d.get("createdAt", _now()),
            updated_at=d.get("updatedAt", _now()),
            raw_extraction=RawExtraction.from_dict(raw) if raw else None,
            organized_workflow=OrganizedWorkflow.from_dict(organized) if organized else None,
            block_structure=BlockStructure.from_dict(blocks) if blocks else None,
        )

    def save(self, path: Path) -> None:
        """Save the record as JSON."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(self.to_dict(), f, indent=2)

    @classmethod
    def load(cls, path: Path) -> "WorkflowRecord":
        """Load a record saved with ``save``."""
        with open(path) as f:
            return cls.from_dict(json.load(f))
