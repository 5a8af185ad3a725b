"""Organize raw transcript events into logical workflow steps."""

import json
from typing import TYPE_CHECKING

from errors import StructuredOutputError
from prompts.analysis_prompts import ORGANIZED_WORKFLOW_SCHEMA, STEP_ORGANIZATION_PROMPT
from .schema import OrganizedWorkflow, RawExtraction
from .structured import StructuredGenerator

if TYPE_CHECKING:
    from utils.logger import WorkflowLogger


class StepOrganizer:
    """Combines granular events into coarser steps with inputs, outputs and applications."""

    STAGE = "organization"

    def __init__(
        self,
        generator: StructuredGenerator,
        logger: "WorkflowLogger | None" = None,
    ):
        self.generator = generator
        self.logger = logger

    def organize(self, raw_extraction: RawExtraction) -> OrganizedWorkflow:
        """Organize a raw extraction.

        Steps are renumbered 1..n in the order returned, and every step is
        given at least one application.

        Raises:
            StructuredOutputError: If the response has no usable steps.
        """
        context = (
            f"# Raw Workflow Transcript ({len(raw_extraction.transcript)} events)\n\n"
            f"```json\n{json.dumps(raw_extraction.to_dict(), indent=2)}\n```\n"
        )
        data = self.generator.generate(
            STEP_ORGANIZATION_PROMPT,
            ORGANIZED_WORKFLOW_SCHEMA,
            context,
            stage=self.STAGE,
        )

        if not isinstance(data.get("steps"), list):
            raise StructuredOutputError("Response is missing a 'steps' list")

        organized = OrganizedWorkflow.from_dict(data)
        if not organized.steps:
            raise StructuredOutputError("Organized workflow contains no steps")

        if self.logger:
            self.logger.info(
                f"Organized {len(raw_extraction.transcript)} events into {len(organized.steps)} steps"
            )
        return organized
