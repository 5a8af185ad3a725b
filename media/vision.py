"""Per-frame scene description with a vision model."""

import base64
import io
from pathlib import Path
from typing import TYPE_CHECKING

from PIL import Image
from tqdm import tqdm

from analyzer.schema import FrameDescription
from prompts.analysis_prompts import FRAME_DESCRIPTION_PROMPT
from .video_processor import FrameInfo

if TYPE_CHECKING:
    from utils.llm import LLMClient
    from utils.logger import WorkflowLogger


class FrameDescriber:
    """Describes what is visible in each sampled frame."""

    STAGE = "vision"
    IMAGE_QUALITY = 85

    def __init__(
        self,
        llm_client: "LLMClient",
        model: str = "gemini-2.0-flash",
        max_image_dimension: int = 1280,
        batch_size: int = 5,
        batch_wait: float = 0.0,
        timeout: float | None = None,
        max_tokens: int = 1024,
        verbose: bool = False,
        logger: "WorkflowLogger | None" = None,
    ):
        self.llm_client = llm_client
        self.model = model
        self.max_image_dimension = max_image_dimension
        self.batch_size = batch_size
        self.batch_wait = batch_wait
        self.timeout = timeout
        self.max_tokens = max_tokens
        self.verbose = verbose
        self.logger = logger

    def _resize_and_encode_image(self, image: Image.Image) -> str:
        """Downscale if needed and return base64-encoded JPEG data."""
        # Convert to RGB if necessary (for JPEG encoding)
        if image.mode != "RGB":
            image = image.convert("RGB")

        width, height = image.size
        max_dim = max(width, height)
        if max_dim > self.max_image_dimension:
            scale = self.max_image_dimension / max_dim
            new_size = (max(1, int(width * scale)), max(1, int(height * scale)))
            image = image.resize(new_size, Image.Resampling.LANCZOS)

        buffer = io.BytesIO()
        image.save(buffer, format="JPEG", quality=self.IMAGE_QUALITY, optimize=True)
        return base64.b64encode(buffer.getvalue()).decode()

    def _build_request(self, image_data: str, label: str) -> dict:
        return {
            "model": self.model,
            "system_prompt": FRAME_DESCRIPTION_PROMPT,
            "content": [
                {"type": "image", "data": image_data, "media_type": "image/jpeg"},
                {"type": "text", "text": label},
            ],
            "max_tokens": self.max_tokens,
            "stage": self.STAGE,
            "timeout": self.timeout,
        }

    def describe_image(self, image_bytes: bytes) -> str:
        """Describe a single encoded image."""
        with Image.open(io.BytesIO(image_bytes)) as img:
            image_data = self._resize_and_encode_image(img)

        text = self.llm_client.generate(**self._build_request(image_data, "Describe this frame."))
        return text.strip()

    def describe_frames(self, frames: list[FrameInfo]) -> list[FrameDescription]:
        """Describe frames in parallel batches.

        Descriptions are returned in the same order as the frames. A failed
        request fails the whole batch.
        """
        if not frames:
            return []

        requests = []
        for frame in frames:
            with Image.open(Path(frame.path)) as img:
                image_data = self._resize_and_encode_image(img)
            requests.append(
                self._build_request(image_data, f"Frame {frame.index + 1} at {frame.timestamp:.1f}s")
            )

        if self.logger:
            self.logger.step(f"Describing {len(frames)} frames with {self.model}...")

        with tqdm(total=len(frames), desc="Describing frames", unit="frame", disable=not self.verbose) as pbar:
            def on_progress(completed: int, total: int) -> None:
                pbar.n = completed
                pbar.refresh()

            texts = self.llm_client.generate_batch_parallel(
                requests,
                batch_size=self.batch_size,
                batch_wait=self.batch_wait,
                progress_callback=on_progress,
            )

        return [
            FrameDescription(index=frame.index, timestamp=frame.timestamp, description=text.strip())
            for frame, text in zip(frames, texts)
        ]
