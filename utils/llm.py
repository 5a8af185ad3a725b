"""Unified LLM client with provider abstraction and cost tracking."""

import base64
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, TYPE_CHECKING

from .tracking import CostTracker, detect_provider

if TYPE_CHECKING:
    from .logger import WorkflowLogger

# Retry configuration for rate limit errors
MAX_RETRIES = 5
INITIAL_RETRY_DELAY = 2.0  # seconds
MAX_RETRY_DELAY = 120.0  # seconds


@dataclass
class LLMResponse:
    """Standardized response from any LLM provider."""

    text: str
    input_tokens: int
    output_tokens: int
    model: str


def _is_rate_limit(error: Exception) -> bool:
    error_str = str(error).lower()
    return "429" in error_str or "quota" in error_str or "rate limit" in error_str


class LLMClient:
    """Unified LLM client with provider abstraction and built-in cost tracking.

    Supports Anthropic, OpenAI, and Gemini providers with automatic detection
    based on model name. Handles provider-specific content formatting internally.

    Example:
        >>> client = LLMClient(cost_tracker)
        >>> text = client.generate(
        ...     model="gemini-2.0-flash",
        ...     system_prompt="Describe this screen.",
        ...     content=[{"type": "image", "path": Path("frame_001.jpg")}],
        ...     stage="vision",
        ...     timeout=60,
        ... )
    """

    def __init__(
        self,
        cost_tracker: CostTracker,
        logger: "WorkflowLogger | None" = None,
    ):
        """Initialize the LLM client.

        Args:
            cost_tracker: CostTracker instance for tracking usage and costs.
            logger: Optional WorkflowLogger for logging API calls.
        """
        self.cost_tracker = cost_tracker
        self.logger = logger

        # Lazy-loaded provider clients
        self._anthropic_client: Any = None
        self._openai_client: Any = None
        self._gemini_client: Any = None

    def _get_anthropic_client(self) -> Any:
        """Get or create Anthropic client."""
        if self._anthropic_client is None:
            from anthropic import Anthropic
            self._anthropic_client = Anthropic()
        return self._anthropic_client

    def _get_openai_client(self) -> Any:
        """Get or create OpenAI client."""
        if self._openai_client is None:
            from openai import OpenAI
            self._openai_client = OpenAI()
        return self._openai_client

    def _get_gemini_client(self) -> Any:
        """Get or create Gemini client using the google-genai package."""
        if self._gemini_client is None:
            import os
            from google import genai

            api_key = os.getenv("GOOGLE_API_KEY") or os.getenv("GEMINI_API_KEY")
            self._gemini_client = genai.Client(api_key=api_key)
        return self._gemini_client

    def generate(
        self,
        model: str,
        system_prompt: str,
        content: list[dict],
        max_tokens: int = 4096,
        stage: str | None = None,
        timeout: float | None = None,
    ) -> str:
        """Generate a text response from an LLM.

        Args:
            model: Model name (e.g., "claude-sonnet-4-5-20250929", "gemini-2.0-flash").
            system_prompt: System prompt for the model.
            content: List of content blocks in unified format:
                - Text: {"type": "text", "text": "..."}
                - Image: {"type": "image", "path": Path(...)} or
                         {"type": "image", "data": "base64...", "media_type": "image/png"}
            max_tokens: Maximum tokens for response.
            stage: Optional pipeline stage name for cost tracking.
            timeout: Optional request timeout in seconds.

        Returns:
            Response text.
        """
        provider = detect_provider(model)

        if provider == "anthropic":
            response = self._call_anthropic(model, system_prompt, content, max_tokens, timeout)
        elif provider == "openai":
            response = self._call_openai(model, system_prompt, content, max_tokens, timeout)
        elif provider == "gemini":
            response = self._call_gemini(model, system_prompt, content, max_tokens, timeout)
        else:
            raise ValueError(f"Unknown provider for model: {model}")

        self.cost_tracker.add_usage(
            response.input_tokens,
            response.output_tokens,
            model=model,
            stage=stage,
        )

        if self.logger:
            self.logger.api(stage, model, response.input_tokens, response.output_tokens)

        return response.text

    def generate_batch_parallel(
        self,
        requests: list[dict],
        batch_size: int = 5,
        batch_wait: float = 0.0,
        progress_callback: Any = None,
    ) -> list[Any]:
        """Generate responses for multiple requests in parallel batches.

        Fires `batch_size` requests in parallel, then optionally waits
        `batch_wait` seconds before the next batch (for strict rate limits).

        Args:
            requests: List of request dicts with keys matching generate() params.
            batch_size: Number of requests to fire in parallel.
            batch_wait: Seconds to wait between batches.
            progress_callback: Optional callback(completed, total) for progress updates.

        Returns:
            List of responses in the same order as requests.

        Raises:
            The first exception raised by any request, after all requests finish.
        """
        from concurrent.futures import ThreadPoolExecutor, as_completed

        total = len(requests)
        results: list[Any] = [None] * total  # Pre-allocate to maintain order
        completed = 0

        for batch_start in range(0, total, batch_size):
            batch_end = min(batch_start + batch_size, total)

            with ThreadPoolExecutor(max_workers=batch_end - batch_start) as executor:
                future_to_idx = {
                    executor.submit(self._generate_single, requests[idx]): idx
                    for idx in range(batch_start, batch_end)
                }

                for future in as_completed(future_to_idx):
                    idx = future_to_idx[future]
                    try:
                        results[idx] = future.result()
                    except Exception as e:
                        # Store error to be raised later
                        results[idx] = e

                    completed += 1
                    if progress_callback:
                        progress_callback(completed, total)

            if batch_end < total and batch_wait > 0:
                if self.logger:
                    self.logger.info(
                        f"Batch complete ({batch_end}/{total}). "
                        f"Waiting {batch_wait:.0f}s for rate limit reset..."
                    )
                time.sleep(batch_wait)

        for result in results:
            if isinstance(result, Exception):
                raise result

        return results

    def _generate_single(self, req: dict) -> Any:
        """Helper for generate_batch_parallel - generates a single response."""
        return self.generate(**req)

    def _call_anthropic(
        self,
        model: str,
        system_prompt: str,
        content: list[dict],
        max_tokens: int,
        timeout: float | None,
    ) -> LLMResponse:
        """Call Anthropic API."""
        client = self._get_anthropic_client()

        kwargs: dict[str, Any] = {}
        if timeout is not None:
            kwargs["timeout"] = timeout

        response = client.messages.create(
            model=model,
            max_tokens=max_tokens,
            system=system_prompt,
            messages=[{"role": "user", "content": self._convert_content_for_anthropic(content)}],
            **kwargs,
        )

        return LLMResponse(
            text=response.content[0].text,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
            model=model,
        )

    def _call_openai(
        self,
        model: str,
        system_prompt: str,
        content: list[dict],
        max_tokens: int,
        timeout: float | None,
    ) -> LLMResponse:
        """Call OpenAI API."""
        client = self._get_openai_client()

        kwargs: dict[str, Any] = {}
        if timeout is not None:
            kwargs["timeout"] = timeout

        response = client.chat.completions.create(
            model=model,
            max_completion_tokens=max_tokens,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": self._convert_content_for_openai(content)},
            ],
            **kwargs,
        )

        return LLMResponse(
            text=response.choices[0].message.content or "",
            input_tokens=response.usage.prompt_tokens if response.usage else 0,
            output_tokens=response.usage.completion_tokens if response.usage else 0,
            model=model,
        )

    def _call_gemini(
        self,
        model: str,
        system_prompt: str,
        content: list[dict],
        max_tokens: int,
        timeout: float | None,
    ) -> LLMResponse:
        """Call Gemini API with retry on rate limit errors."""
        from google.genai import types, errors as genai_errors

        client = self._get_gemini_client()

        config = types.GenerateContentConfig(
            system_instruction=system_prompt,
            max_output_tokens=max_tokens,
            # HttpOptions.timeout is in milliseconds
            http_options=types.HttpOptions(timeout=int(timeout * 1000)) if timeout else None,
        )
        gemini_content = self._convert_content_for_gemini(content)

        retry_delay = INITIAL_RETRY_DELAY
        for attempt in range(MAX_RETRIES):
            try:
                response = client.models.generate_content(
                    model=model,
                    contents=gemini_content,
                    config=config,
                )
            except genai_errors.ClientError as e:
                if not _is_rate_limit(e) or attempt == MAX_RETRIES - 1:
                    raise
                if self.logger:
                    self.logger.warning(
                        f"Rate limit hit, retrying in {retry_delay:.1f}s "
                        f"(attempt {attempt + 1}/{MAX_RETRIES})"
                    )
                time.sleep(retry_delay)
                retry_delay = min(retry_delay * 2, MAX_RETRY_DELAY)
                continue

            usage = response.usage_metadata
            return LLMResponse(
                text=response.text or "",
                input_tokens=(usage.prompt_token_count or 0) if usage else 0,
                output_tokens=(usage.candidates_token_count or 0) if usage else 0,
                model=model,
            )

        raise RuntimeError("Unexpected error in Gemini API call")

    def _load_image(self, block: dict) -> tuple[str, str]:
        """Return (base64_data, media_type) for an image content block."""
        if "path" in block:
            image_path = Path(block["path"])
            with open(image_path, "rb") as f:
                image_data = base64.b64encode(f.read()).decode("utf-8")
            return image_data, self._get_media_type(image_path)
        return block["data"], block.get("media_type", "image/png")

    def _convert_content_for_anthropic(self, content: list[dict]) -> list[dict]:
        """Convert unified content format to Anthropic format."""
        result = []
        for block in content:
            if block["type"] == "text":
                result.append({"type": "text", "text": block["text"]})
            elif block["type"] == "image":
                image_data, media_type = self._load_image(block)
                result.append({
                    "type": "image",
                    "source": {
                        "type": "base64",
                        "media_type": media_type,
                        "data": image_data,
                    }
                })
        return result

    def _convert_content_for_openai(self, content: list[dict]) -> list[dict]:
        """Convert unified content format to OpenAI format."""
        result = []
        for block in content:
            if block["type"] == "text":
                result.append({"type": "text", "text": block["text"]})
            elif block["type"] == "image":
                image_data, media_type = self._load_image(block)
                result.append({
                    "type": "image_url",
                    "image_url": {"url": f"data:{media_type};base64,{image_data}"}
                })
        return result

    def _convert_content_for_gemini(self, content: list[dict]) -> list[Any]:
        """Convert unified content format to Gemini format using types.Part."""
        from google.genai import types

        result = []
        for block in content:
            if block["type"] == "text":
                result.append(types.Part.from_text(text=block["text"]))
            elif block["type"] == "image":
                image_data, media_type = self._load_image(block)
                result.append(types.Part.from_bytes(
                    data=base64.b64decode(image_data),
                    mime_type=media_type,
                ))
        return result

    def _get_media_type(self, image_path: Path) -> str:
        """Get MIME type from image file extension."""
        mime_types = {
            ".png": "image/png",
            ".jpg": "image/jpeg",
            ".jpeg": "image/jpeg",
            ".gif": "image/gif",
            ".webp": "image/webp",
        }
        return mime_types.get(image_path.suffix.lower(), "image/png")
