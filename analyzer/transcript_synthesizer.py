"""Merge frame descriptions and narration into a chronological event transcript."""

import logging
from typing import TYPE_CHECKING

from errors import StructuredOutputError
from prompts.analysis_prompts import TRANSCRIPT_SCHEMA, TRANSCRIPT_SYNTHESIS_PROMPT
from .schema import FrameDescription, RawExtraction, TranscriptEvent
from .structured import StructuredGenerator

if TYPE_CHECKING:
    from utils.logger import WorkflowLogger

_module_logger = logging.getLogger(__name__)


class TranscriptSynthesizer:
    """Builds the raw extraction from what was seen and what was said."""

    STAGE = "synthesis"

    def __init__(
        self,
        generator: StructuredGenerator,
        logger: "WorkflowLogger | None" = None,
    ):
        self.generator = generator
        self.logger = logger

    def synthesize(
        self,
        frame_descriptions: list[FrameDescription],
        narration: str | None = None,
    ) -> RawExtraction:
        """Produce the chronological list of workflow events.

        Args:
            frame_descriptions: Frame descriptions in chronological order.
            narration: Narration text; empty or None when unavailable.

        Returns:
            RawExtraction whose events all have a screen and an action.

        Raises:
            StructuredOutputError: If the model output cannot be parsed into
                at least one complete event.
        """
        if not frame_descriptions:
            raise ValueError("At least one frame description is required")

        narration = (narration or "").strip()
        data = self.generator.generate(
            TRANSCRIPT_SYNTHESIS_PROMPT,
            TRANSCRIPT_SCHEMA,
            self._build_context(frame_descriptions, narration),
            stage=self.STAGE,
        )

        events_data = data.get("transcript")
        if not isinstance(events_data, list):
            raise StructuredOutputError("Response is missing a 'transcript' list")

        events = []
        for item in events_data:
            if not isinstance(item, dict):
                continue
            event = TranscriptEvent.from_dict(item)
            if not event.screen or not event.action:
                _module_logger.warning("Dropping incomplete transcript event: %s", item)
                continue
            if not narration and not event.narration:
                # Nothing was said, so narration can only restate what was seen
                event.narration = event.action
            events.append(event)

        if not events:
            raise StructuredOutputError("Transcript contains no complete events")

        # sorted() is stable, so events sharing a timestamp keep model order
        events = sorted(events, key=lambda e: e.time)

        if self.logger:
            self.logger.info(f"Synthesized {len(events)} transcript events")
        return RawExtraction(transcript=events)

    def _build_context(self, frames: list[FrameDescription], narration: str) -> str:
        parts = ["# Screen Recording\n\n", f"## Frame Descriptions ({len(frames)} frames)\n\n"]
        for frame in frames:
            parts.append(f"- [{frame.timestamp:.1f}s] Frame {frame.index + 1}: {frame.description}\n")

        if narration:
            parts.append("\n## Narration\n\n")
            parts.append(f"{narration}\n")
        else:
            parts.append("\n## Narration\n\nNo narration is available for this recording.\n")

        return "".join(parts)
