"""Narration transcription for extracted audio tracks."""

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, TYPE_CHECKING

from prompts.analysis_prompts import NARRATION_TRANSCRIPTION_PROMPT
from utils.tracking import CostTracker, detect_provider

if TYPE_CHECKING:
    from utils.logger import WorkflowLogger

_module_logger = logging.getLogger(__name__)

AUDIO_MIME_TYPE = "audio/wav"


class Transcriber:
    """Transcribes narration with a speech-capable model.

    Transcription is best effort: any failure is logged and reported as an
    empty transcript, because a recording without narration can still be
    analyzed from its frames alone.

    Gemini models receive small files inline and larger files through the
    Files API; the staged upload is always deleted afterwards. OpenAI models
    use the speech-to-text endpoint.
    """

    STAGE = "transcription"

    def __init__(
        self,
        model: str = "gemini-2.0-flash",
        inline_limit_bytes: int = 20 * 1024 * 1024,
        timeout: float | None = 300.0,
        client: Any = None,
        cost_tracker: CostTracker | None = None,
        logger: "WorkflowLogger | None" = None,
    ):
        """Initialize the transcriber.

        Args:
            model: Model name; the provider is detected from it.
            inline_limit_bytes: Largest audio file sent inline with the request.
            timeout: Request timeout in seconds.
            client: Provider client to use instead of creating one.
            cost_tracker: Optional CostTracker for token usage.
            logger: Optional WorkflowLogger for styled output.
        """
        self.model = model
        self.provider = detect_provider(model)
        self.inline_limit_bytes = inline_limit_bytes
        self.timeout = timeout
        self.cost_tracker = cost_tracker
        self.logger = logger
        self._client = client

    def _get_client(self) -> Any:
        """Get or create the provider client."""
        if self._client is None:
            if self.provider == "gemini":
                import os
                from google import genai

                api_key = os.getenv("GOOGLE_API_KEY") or os.getenv("GEMINI_API_KEY")
                self._client = genai.Client(api_key=api_key)
            elif self.provider == "openai":
                from openai import OpenAI
                self._client = OpenAI()
            else:
                raise ValueError(f"Model {self.model} cannot transcribe audio")
        return self._client

    def transcribe(self, audio_path: Path | None) -> str:
        """Transcribe an audio file.

        Returns:
            The narration text, or "" if there is no audio or transcription failed.
        """
        if audio_path is None or not Path(audio_path).exists():
            return ""

        audio_path = Path(audio_path)
        try:
            if self.provider == "openai":
                text = self._transcribe_openai(audio_path)
            else:
                text = self._transcribe_gemini(audio_path)
        except Exception as e:
            message = f"Transcription failed, continuing without narration: {e}"
            if self.logger:
                self.logger.warning(message)
            else:
                _module_logger.warning(message)
            return ""

        text = (text or "").strip()
        if self.logger:
            self.logger.info(f"Transcribed narration: {len(text)} characters")
        return text

    def _transcribe_gemini(self, audio_path: Path) -> str:
        from google.genai import types

        client = self._get_client()
        config = types.GenerateContentConfig(
            # HttpOptions.timeout is in milliseconds
            http_options=types.HttpOptions(timeout=int(self.timeout * 1000)) if self.timeout else None,
        )

        if audio_path.stat().st_size <= self.inline_limit_bytes:
            audio_part = types.Part.from_bytes(
                data=audio_path.read_bytes(),
                mime_type=AUDIO_MIME_TYPE,
            )
            return self._generate_gemini(client, [NARRATION_TRANSCRIPTION_PROMPT, audio_part], config)

        with self._staged_upload(client, audio_path) as uploaded:
            return self._generate_gemini(client, [NARRATION_TRANSCRIPTION_PROMPT, uploaded], config)

    def _generate_gemini(self, client: Any, contents: list[Any], config: Any) -> str:
        response = client.models.generate_content(
            model=self.model,
            contents=contents,
            config=config,
        )
        usage = getattr(response, "usage_metadata", None)
        if self.cost_tracker and usage:
            self.cost_tracker.add_usage(
                usage.prompt_token_count or 0,
                usage.candidates_token_count or 0,
                self.model,
                stage=self.STAGE,
            )
        return response.text or ""

    @contextmanager
    def _staged_upload(self, client: Any, audio_path: Path) -> Iterator[Any]:
        """Upload a file to the Files API and delete it on exit."""
        from google.genai import types

        if self.logger:
            self.logger.step(f"Uploading {audio_path.stat().st_size / (1024 * 1024):.1f} MB of audio...")
        uploaded = client.files.upload(
            file=str(audio_path),
            config=types.UploadFileConfig(mime_type=AUDIO_MIME_TYPE),
        )
        try:
            yield uploaded
        finally:
            try:
                client.files.delete(name=uploaded.name)
            except Exception as e:
                _module_logger.error(f"Failed to delete staged upload {uploaded.name}: {e}")

    def _transcribe_openai(self, audio_path: Path) -> str:
        size = audio_path.stat().st_size
        if size > self.inline_limit_bytes:
            raise ValueError(
                f"Audio file is {size / (1024 * 1024):.1f} MB, over the "
                f"{self.inline_limit_bytes / (1024 * 1024):.0f} MB upload limit"
            )

        client = self._get_client()
        with open(audio_path, "rb") as audio_file:
            response = client.audio.transcriptions.create(
                model=self.model,
                file=audio_file,
                timeout=self.timeout,
            )
        return response.text
