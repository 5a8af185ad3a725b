"""Media module for workflow capture.

This module provides:
- VideoProcessor: Validate videos, sample frames and extract audio with ffmpeg
- Transcriber: Transcribe narration with a speech-capable model
- FrameDescriber: Describe sampled frames with a vision model
"""

from .video_processor import FrameExtraction, FrameInfo, ValidationResult, VideoProcessor
from .transcriber import Transcriber
from .vision import FrameDescriber

__all__ = [
    "VideoProcessor",
    "FrameExtraction",
    "FrameInfo",
    "ValidationResult",
    "Transcriber",
    "FrameDescriber",
]
