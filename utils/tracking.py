"""Token cost and time tracking for pipeline stages."""

import threading
import time
from dataclasses import dataclass, field
from typing import Any


# Model pricing per million tokens (input, output)
MODEL_PRICING: dict[str, tuple[float, float]] = {
    "claude-opus-4-5-20250929": (5.0, 25.0),
    "claude-opus-4-5": (5.0, 25.0),
    "claude-sonnet-4-5-20250929": (3.0, 15.0),
    "claude-sonnet-4-5": (3.0, 15.0),
    "claude-haiku-4-5-20250929": (1.0, 5.0),
    "claude-haiku-4-5": (1.0, 5.0),
}

# OpenAI model pricing (approximate)
OPENAI_PRICING: dict[str, tuple[float, float]] = {
    "gpt-4o": (2.50, 10.0),
    "gpt-4o-mini": (0.15, 0.60),
    "gpt-4o-transcribe": (2.50, 10.0),
}

# Gemini model pricing per million tokens (input, output)
GEMINI_PRICING: dict[str, tuple[float, float]] = {
    "gemini-2.0-flash": (0.10, 0.40),
    "gemini-2.5-flash": (0.30, 2.50),
    "gemini-3-flash-preview": (0.5, 3.0),
}

# Default pricing (Claude Sonnet 4.5)
DEFAULT_PRICING = (3.0, 15.0)


def get_model_pricing(model: str) -> tuple[float, float]:
    """Get pricing for a model. Returns (input_price_per_mtok, output_price_per_mtok)."""
    for table in (MODEL_PRICING, OPENAI_PRICING, GEMINI_PRICING):
        if model in table:
            return table[model]
    return DEFAULT_PRICING


def detect_provider(model: str) -> str:
    """Detect the provider based on model name.

    Returns: "anthropic", "openai", or "gemini"
    """
    if model.startswith("claude"):
        return "anthropic"
    if model.startswith(("gpt", "o1", "o3", "whisper")):
        return "openai"
    if model.startswith("gemini"):
        return "gemini"
    # Default to anthropic
    return "anthropic"


@dataclass
class CostTracker:
    """Tracks API costs and token usage across calls and pipeline stages.

    Several workflows may be processed at once, so updates are serialized.
    """

    total_input_tokens: int = 0
    total_output_tokens: int = 0
    api_calls: int = 0
    total_cost_dollars: float = 0.0

    stage_stats: dict[str, dict[str, Any]] = field(default_factory=dict)
    model_stats: dict[str, dict[str, Any]] = field(default_factory=dict)

    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def add_usage(
        self,
        input_tokens: int,
        output_tokens: int,
        model: str,
        stage: str | None = None,
    ) -> float:
        """Record token usage from an API call.

        Args:
            input_tokens: Number of input tokens.
            output_tokens: Number of output tokens.
            model: The model used for this API call.
            stage: Optional pipeline stage (e.g., 'vision', 'synthesis').

        Returns:
            The cost of this API call in dollars.
        """
        input_price, output_price = get_model_pricing(model)
        call_cost = (
            (input_tokens / 1_000_000) * input_price +
            (output_tokens / 1_000_000) * output_price
        )

        with self._lock:
            self.total_input_tokens += input_tokens
            self.total_output_tokens += output_tokens
            self.api_calls += 1
            self.total_cost_dollars += call_cost

            stats = self.model_stats.setdefault(
                model, {"input": 0, "output": 0, "calls": 0, "cost": 0.0}
            )
            stats["input"] += input_tokens
            stats["output"] += output_tokens
            stats["calls"] += 1
            stats["cost"] += call_cost

            if stage:
                stats = self.stage_stats.setdefault(
                    stage, {"input": 0, "output": 0, "calls": 0, "cost": 0.0, "model": model}
                )
                stats["input"] += input_tokens
                stats["output"] += output_tokens
                stats["calls"] += 1
                stats["cost"] += call_cost

        return call_cost

    @property
    def total_cost(self) -> float:
        """Get total cost in dollars."""
        return self.total_cost_dollars

    def get_summary(self) -> dict[str, str]:
        """Get a summary dictionary for display."""
        models_str = ", ".join(self.model_stats) or "None"
        return {
            "Models Used": models_str,
            "API Calls": str(self.api_calls),
            "Input Tokens": f"{self.total_input_tokens:,}",
            "Output Tokens": f"{self.total_output_tokens:,}",
            "Total Cost": f"${self.total_cost:.4f}",
        }

    def get_stage_summary(self) -> list[list[str]]:
        """Get per-stage breakdown for table display."""
        return [
            [
                stage,
                stats.get("model", "unknown"),
                str(stats["calls"]),
                f"{stats['input']:,}",
                f"{stats['output']:,}",
                f"${stats['cost']:.4f}",
            ]
            for stage, stats in self.stage_stats.items()
        ]


class Timer:
    """Context manager for timing operations."""

    def __init__(self, name: str = "Operation"):
        self.name = name
        self.start_time: float | None = None
        self.end_time: float | None = None

    def __enter__(self) -> "Timer":
        self.start_time = time.time()
        self.end_time = None
        return self

    def __exit__(self, *args: Any) -> None:
        self.end_time = time.time()

    @property
    def elapsed(self) -> float:
        """Get elapsed time in seconds."""
        if self.start_time is None:
            return 0.0
        end = self.end_time or time.time()
        return end - self.start_time

    @property
    def elapsed_str(self) -> str:
        """Get elapsed time as a formatted string."""
        seconds = self.elapsed
        if seconds < 60:
            return f"{seconds:.1f}s"
        minutes = int(seconds // 60)
        secs = seconds % 60
        if minutes < 60:
            return f"{minutes}m {secs:.0f}s"
        hours = minutes // 60
        mins = minutes % 60
        return f"{hours}h {mins}m {secs:.0f}s"
