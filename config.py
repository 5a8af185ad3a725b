"""Configuration and settings for the workflow capture pipeline."""

import os
from dataclasses import dataclass, field
from pathlib import Path


@dataclass
class ModelConfig:
    """Model configuration for the different stages of the pipeline.

    Allows using different models (potentially from different providers)
    for different stages to optimize cost vs quality tradeoffs.
    """

    vision: str = "gemini-2.0-flash"                      # Per-frame scene description
    transcription: str = "gemini-2.0-flash"               # Narration speech-to-text
    synthesis: str = "gemini-2.0-flash"                   # Raw transcript synthesis
    organization: str = "claude-sonnet-4-5-20250929"      # Step organization
    block_generation: str = "claude-sonnet-4-5-20250929"  # Block graph generation

    @classmethod
    def all_same(cls, model: str) -> "ModelConfig":
        """Create a config using the same model for all stages."""
        return cls(
            vision=model,
            transcription=model,
            synthesis=model,
            organization=model,
            block_generation=model,
        )


@dataclass
class Config:
    """Application configuration."""

    # API Keys (loaded from .env file)
    anthropic_api_key: str = ""
    openai_api_key: str = ""
    google_api_key: str = ""

    models: ModelConfig = field(default_factory=ModelConfig)

    # Storage paths
    uploads_dir: Path = Path("./uploads")
    work_dir: Path = Path("./uploads/work")
    logs_dir: Path = Path("./logs")

    # Media extraction settings
    frame_sample_rate_hz: float = 1.0
    max_frames: int = 30
    audio_sample_rate: int = 44100
    max_video_bytes: int = 300 * 1024 * 1024
    max_video_seconds: float | None = None  # Disabled; duration is an upstream UX concern
    allowed_video_formats: tuple[str, ...] = (".mov", ".mp4")

    # External call settings
    llm_timeout_seconds: float = 180.0
    transcription_timeout_seconds: float = 300.0
    inline_audio_limit_bytes: int = 20 * 1024 * 1024
    max_tokens: int = 8192
    vision_batch_size: int = 5
    vision_batch_wait_seconds: float = 0.0

    # Orchestration
    max_concurrent_workflows: int = 4

    def __post_init__(self):
        """Load API keys and path overrides from environment after initialization."""
        self.anthropic_api_key = os.getenv("ANTHROPIC_API_KEY", self.anthropic_api_key)
        self.openai_api_key = os.getenv("OPENAI_API_KEY", self.openai_api_key)
        self.google_api_key = (
            os.getenv("GOOGLE_API_KEY")
            or os.getenv("GEMINI_API_KEY")
            or self.google_api_key
        )

        self.uploads_dir = Path(os.getenv("WORKFLOW_UPLOADS_DIR", self.uploads_dir))
        self.work_dir = Path(os.getenv("WORKFLOW_WORK_DIR", self.work_dir))
        self.logs_dir = Path(os.getenv("WORKFLOW_LOGS_DIR", self.logs_dir))

    def ensure_dirs(self) -> None:
        """Create the storage directories if they do not exist."""
        self.uploads_dir.mkdir(parents=True, exist_ok=True)
        self.work_dir.mkdir(parents=True, exist_ok=True)
        self.logs_dir.mkdir(parents=True, exist_ok=True)


# Global config instance
config = Config()


def get_config() -> Config:
    """Get the global configuration instance."""
    return config


def update_config(**kwargs) -> Config:
    """Update configuration with new values."""
    global config
    for key, value in kwargs.items():
        if hasattr(config, key):
            setattr(config, key, value)
    return config
