"""Generate the editable block graph from an organized workflow."""

import json
import logging
from typing import TYPE_CHECKING

from errors import StructuredOutputError
from prompts.analysis_prompts import BLOCK_GENERATION_PROMPT, BLOCK_STRUCTURE_SCHEMA
from .graph_validation import repair_block_structure
from .schema import BlockStructure, OrganizedWorkflow
from .structured import StructuredGenerator

if TYPE_CHECKING:
    from utils.logger import WorkflowLogger

_module_logger = logging.getLogger(__name__)


class BlockGraphGenerator:
    """Turns organized steps into blocks, sources and connections.

    The model's output is never trusted as-is: enum fields outside their
    closed set are coerced while parsing (intent to ``unknown``, source type
    to ``file``, update rules to ``manual``), and the graph is repaired so
    block ids are unique and every connection joins two existing blocks.
    """

    STAGE = "block_generation"

    def __init__(
        self,
        generator: StructuredGenerator,
        logger: "WorkflowLogger | None" = None,
    ):
        self.generator = generator
        self.logger = logger

    def generate(self, organized_workflow: OrganizedWorkflow) -> BlockStructure:
        """Generate and validate a block structure.

        Raises:
            StructuredOutputError: If the response has no 'blocks' list.
        """
        context = (
            f"# Organized Workflow ({len(organized_workflow.steps)} steps)\n\n"
            f"```json\n{json.dumps(organized_workflow.to_dict(), indent=2)}\n```\n"
        )
        data = self.generator.generate(
            BLOCK_GENERATION_PROMPT,
            BLOCK_STRUCTURE_SCHEMA,
            context,
            stage=self.STAGE,
        )
        return self.parse(data)

    def parse(self, data: dict) -> BlockStructure:
        """Validate and repair a raw block-structure payload from the model."""
        if not isinstance(data.get("blocks"), list):
            raise StructuredOutputError("Response is missing a 'blocks' list")
        for key in ("sources", "connections"):
            if data.get(key) is not None and not isinstance(data[key], list):
                raise StructuredOutputError(f"'{key}' must be a list")

        structure = BlockStructure.from_dict(data)

        report = repair_block_structure(structure)
        for note in report.describe():
            if self.logger:
                self.logger.warning(f"Block graph repair: {note}")
            else:
                _module_logger.warning("Block graph repair: %s", note)

        if self.logger:
            self.logger.info(
                f"Generated {len(structure.blocks)} blocks, {len(structure.sources)} sources, "
                f"{len(structure.connections)} connections"
            )
        return structure
