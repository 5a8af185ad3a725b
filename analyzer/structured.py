"""Structured generation: instructions + output schema + context in, parsed JSON out."""

import logging
from typing import TYPE_CHECKING, Any

from prompts.analysis_prompts import schema_text
from .json_utils import extract_json_block

if TYPE_CHECKING:
    from utils.llm import LLMClient

_module_logger = logging.getLogger(__name__)


class StructuredGenerator:
    """Wraps one text-generation model behind a parse-or-fail contract.

    The model is told the target shape in natural language; its reply must
    contain exactly one JSON block of that shape. Anything else raises
    ``StructuredOutputError``.
    """

    def __init__(
        self,
        llm_client: "LLMClient",
        model: str,
        max_tokens: int = 8192,
        timeout: float | None = None,
    ):
        self.llm_client = llm_client
        self.model = model
        self.max_tokens = max_tokens
        self.timeout = timeout

    def generate(
        self,
        instructions: str,
        schema: dict,
        context: str,
        *,
        json_type: str = "object",
        stage: str | None = None,
    ) -> Any:
        """Run one generation call and parse its structured block.

        Args:
            instructions: System prompt describing the task.
            schema: Example of the expected output shape.
            context: The stage input, rendered as text.
            json_type: Expected top-level JSON type.
            stage: Stage name used for cost tracking.

        Raises:
            StructuredOutputError: If the reply has no single well-formed block.
        """
        content = [
            {"type": "text", "text": context},
            {
                "type": "text",
                "text": f"\n## Output schema\n\n```json\n{schema_text(schema)}\n```\n",
            },
        ]
        text = self.llm_client.generate(
            model=self.model,
            system_prompt=instructions,
            content=content,
            max_tokens=self.max_tokens,
            stage=stage,
            timeout=self.timeout,
        )
        _module_logger.debug("%s response: %d chars", stage or "generation", len(text or ""))
        return extract_json_block(text, json_type=json_type)
