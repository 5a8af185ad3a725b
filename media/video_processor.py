"""Video processor for sampling frames and extracting audio from video files."""

import json
import logging
import re
import shutil
import subprocess
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from errors import AudioExtractionError, FrameExtractionError

if TYPE_CHECKING:
    from utils.logger import WorkflowLogger

# Configure module logger
_module_logger = logging.getLogger(__name__)


@dataclass
class FrameInfo:
    """Information about an extracted frame."""

    path: Path
    timestamp: float  # Timestamp in seconds
    index: int

    def to_dict(self) -> dict:
        """Convert to serializable dictionary."""
        return {
            "path": str(self.path),
            "timestamp": self.timestamp,
            "index": self.index,
        }


@dataclass
class FrameExtraction:
    """Sampled frames plus the temporary directory that holds them."""

    frames: list[FrameInfo]
    frames_dir: Path

    def cleanup(self) -> None:
        """Remove the frame directory. Failures are logged, never raised."""
        try:
            shutil.rmtree(self.frames_dir)
        except FileNotFoundError:
            pass
        except OSError as e:
            _module_logger.error(f"Failed to remove frame directory {self.frames_dir}: {e}")


@dataclass
class ValidationResult:
    """Outcome of validating a video before processing."""

    valid: bool
    reason: str | None = None


class VideoProcessor:
    """Samples still frames and a mono PCM audio track from a video.

    Frame sampling is deterministic: the same video and sample rate always
    produce the same frames.
    """

    def __init__(
        self,
        sample_rate_hz: float = 1.0,
        max_frames: int | None = 30,
        audio_sample_rate: int = 44100,
        max_video_bytes: int = 300 * 1024 * 1024,
        allowed_formats: tuple[str, ...] = (".mov", ".mp4"),
        max_video_seconds: float | None = None,
        logger: "WorkflowLogger | None" = None,
    ):
        """Initialize the video processor.

        Args:
            sample_rate_hz: Frames per second to sample.
            max_frames: Upper bound on returned frames; longer videos are
                subsampled evenly. None disables the bound.
            audio_sample_rate: Sample rate of the extracted audio.
            max_video_bytes: Size ceiling enforced by validate().
            allowed_formats: Accepted file extensions (lowercase, with dot).
            max_video_seconds: Optional duration ceiling enforced by validate().
            logger: Optional WorkflowLogger for styled output.
        """
        self.sample_rate_hz = sample_rate_hz
        self.max_frames = max_frames
        self.audio_sample_rate = audio_sample_rate
        self.max_video_bytes = max_video_bytes
        self.allowed_formats = tuple(f.lower() for f in allowed_formats)
        self.max_video_seconds = max_video_seconds
        self.logger = logger

    def _log_step(self, message: str) -> None:
        """Log step message using logger if available."""
        if self.logger:
            self.logger.step(message)

    def _log_info(self, message: str) -> None:
        """Log info message using logger if available."""
        if self.logger:
            self.logger.info(message)

    def _run(self, cmd: list[str]) -> subprocess.CompletedProcess:
        if shutil.which(cmd[0]) is None:
            _module_logger.error(f"{cmd[0]} not found on system PATH")
            raise RuntimeError(
                f"{cmd[0]} not found. Please install ffmpeg:\n"
                "  macOS: brew install ffmpeg\n"
                "  Ubuntu: apt-get install ffmpeg\n"
            )
        return subprocess.run(cmd, capture_output=True, text=True)

    def validate(self, video_path: Path) -> ValidationResult:
        """Check that a video exists, has an accepted format and is small enough."""
        video_path = Path(video_path)

        if not video_path.is_file():
            return ValidationResult(False, "Video file not found")

        if video_path.suffix.lower() not in self.allowed_formats:
            formats = ", ".join(self.allowed_formats)
            return ValidationResult(False, f"Unsupported video format; supported formats: {formats}")

        size = video_path.stat().st_size
        if size > self.max_video_bytes:
            limit_mb = self.max_video_bytes / (1024 * 1024)
            return ValidationResult(False, f"File size exceeds {limit_mb:.0f}MB limit")

        if self.max_video_seconds is not None:
            try:
                duration = self.get_duration(video_path)
            except RuntimeError as e:
                return ValidationResult(False, f"Could not read video metadata: {e}")
            if duration > self.max_video_seconds:
                return ValidationResult(
                    False, f"Video is longer than {self.max_video_seconds:.0f} seconds"
                )

        return ValidationResult(True)

    def get_duration(self, video_path: Path) -> float:
        """Get the duration of a video file in seconds."""
        cmd = [
            "ffprobe",
            "-v", "error",
            "-show_entries", "format=duration",
            "-of", "json",
            str(video_path),
        ]

        result = self._run(cmd)
        if result.returncode != 0:
            _module_logger.error(f"ffprobe failed with return code {result.returncode}: {result.stderr}")
            raise RuntimeError(f"ffprobe error: {result.stderr}")

        try:
            return float(json.loads(result.stdout)["format"]["duration"])
        except (KeyError, TypeError, ValueError) as e:
            raise RuntimeError(f"ffprobe returned no duration: {e}") from e

    def extract_frames(self, video_path: Path, parent_dir: Path | None = None) -> FrameExtraction:
        """Sample frames at a fixed rate into a new temporary directory.

        Args:
            video_path: Path to the video file.
            parent_dir: Directory in which the frame directory is created.
                If None, the system temp directory is used.

        Returns:
            FrameExtraction with frames in chronological order.

        Raises:
            FrameExtractionError: If ffmpeg fails or writes no frame files.
                The frame directory is removed before raising.
        """
        video_path = Path(video_path)
        frames_dir = Path(tempfile.mkdtemp(prefix="frames_", dir=parent_dir))
        extraction = FrameExtraction(frames=[], frames_dir=frames_dir)

        stem = re.sub(r"[^A-Za-z0-9_-]+", "_", video_path.stem) or "video"
        output_pattern = str(frames_dir / f"{stem}_frame_%03d.jpg")
        frame_name = re.compile(rf"^{re.escape(stem)}_frame_\d{{3,}}\.jpg$")

        self._log_step(f"Extracting frames at {self.sample_rate_hz} fps...")
        cmd = [
            "ffmpeg",
            "-i", str(video_path),
            "-vf", f"fps={self.sample_rate_hz}",
            "-qscale:v", "2",  # High JPEG quality
            output_pattern,
            "-y",  # Overwrite
        ]

        try:
            result = self._run(cmd)
        except (OSError, RuntimeError) as e:
            extraction.cleanup()
            raise FrameExtractionError(f"Failed to extract frames: {e}") from e

        if result.returncode != 0:
            _module_logger.error(f"ffmpeg frame extraction failed: {result.stderr}")
            extraction.cleanup()
            raise FrameExtractionError(f"Failed to extract frames: {result.stderr.strip()[-500:]}")

        frame_paths = sorted(p for p in frames_dir.iterdir() if frame_name.match(p.name))
        if not frame_paths:
            extraction.cleanup()
            raise FrameExtractionError("Frame extraction completed but no frames were found")

        frames = [
            FrameInfo(path=path, timestamp=i / self.sample_rate_hz, index=i)
            for i, path in enumerate(frame_paths)
        ]

        if self.max_frames and len(frames) > self.max_frames:
            step = len(frames) / self.max_frames
            frames = [frames[int(i * step)] for i in range(self.max_frames)]

        extraction.frames = frames
        self._log_info(f"Extracted {len(frame_paths)} frames, using {len(frames)}")
        return extraction

    def extract_audio(self, video_path: Path, output_path: Path | None = None) -> Path:
        """Extract the audio track to single-channel 16-bit PCM WAV.

        Raises:
            AudioExtractionError: If ffmpeg fails or the video has no audio track.
                Any partial output file is removed before raising.
        """
        video_path = Path(video_path)
        if output_path is None:
            output_path = Path(tempfile.mkdtemp(prefix="audio_")) / f"{video_path.stem}_audio.wav"
        output_path = Path(output_path)

        self._log_step("Extracting audio track...")
        cmd = [
            "ffmpeg",
            "-i", str(video_path),
            "-vn",  # No video
            "-acodec", "pcm_s16le",  # PCM 16-bit
            "-ar", str(self.audio_sample_rate),
            "-ac", "1",  # Mono
            str(output_path),
            "-y",  # Overwrite
        ]

        try:
            result = self._run(cmd)
        except (OSError, RuntimeError) as e:
            raise AudioExtractionError(f"Failed to extract audio: {e}") from e

        if result.returncode != 0 or not output_path.exists() or output_path.stat().st_size == 0:
            # Audio extraction fails when the video has no audio track
            output_path.unlink(missing_ok=True)
            raise AudioExtractionError(
                "Audio extraction failed (video may have no audio track)"
            )

        self._log_info(f"Audio extracted: {output_path.stat().st_size / 1024:.1f} KB")
        return output_path
