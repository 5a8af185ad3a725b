"""
Unit tests for narration transcription.

The provider client is replaced with a fake that records uploads and
deletions, so the staged-upload cleanup can be checked on every path.
"""

import tempfile
import unittest
from pathlib import Path
from types import SimpleNamespace

from media.transcriber import Transcriber


class FakeGeminiClient:
    def __init__(self, text="Open the sales report.", error=None, delete_error=None):
        self.text = text
        self.error = error
        self.delete_error = delete_error
        self.uploaded = []
        self.deleted = []
        self.contents = []
        self.models = SimpleNamespace(generate_content=self._generate_content)
        self.files = SimpleNamespace(upload=self._upload, delete=self._delete)

    def _generate_content(self, model, contents, config=None):
        self.contents.append(contents)
        if self.error:
            raise self.error
        return SimpleNamespace(text=self.text, usage_metadata=None)

    def _upload(self, file, config=None):
        self.uploaded.append(file)
        return SimpleNamespace(name=f"files/{len(self.uploaded)}")

    def _delete(self, name):
        if self.delete_error:
            raise self.delete_error
        self.deleted.append(name)


class TestTranscriber(unittest.TestCase):
    """Test best-effort transcription."""

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.audio = Path(self._tmp.name) / "audio.wav"
        self.audio.write_bytes(b"R" * 2048)

    def tearDown(self):
        self._tmp.cleanup()

    def test_inline_audio(self):
        """Small files are sent inline without a staged upload."""
        client = FakeGeminiClient()
        text = Transcriber(inline_limit_bytes=4096, client=client).transcribe(self.audio)
        self.assertEqual(text, "Open the sales report.")
        self.assertEqual(client.uploaded, [])

    def test_staged_upload_deleted_on_success(self):
        """Large files are uploaded first and the upload is deleted afterwards."""
        client = FakeGeminiClient()
        text = Transcriber(inline_limit_bytes=1024, client=client).transcribe(self.audio)
        self.assertEqual(text, "Open the sales report.")
        self.assertEqual(client.uploaded, [str(self.audio)])
        self.assertEqual(client.deleted, ["files/1"])

    def test_staged_upload_deleted_on_failure(self):
        """The staged upload is deleted even when transcription fails."""
        client = FakeGeminiClient(error=RuntimeError("deadline exceeded"))
        text = Transcriber(inline_limit_bytes=1024, client=client).transcribe(self.audio)
        self.assertEqual(text, "")
        self.assertEqual(client.deleted, ["files/1"])

    def test_delete_failure_not_raised(self):
        """A failed cleanup is logged, not raised."""
        client = FakeGeminiClient(delete_error=RuntimeError("403"))
        text = Transcriber(inline_limit_bytes=1024, client=client).transcribe(self.audio)
        self.assertEqual(text, "Open the sales report.")

    def test_failure_returns_empty(self):
        """Any provider error degrades to empty narration."""
        client = FakeGeminiClient(error=ConnectionError("offline"))
        self.assertEqual(Transcriber(client=client).transcribe(self.audio), "")

    def test_missing_audio(self):
        """No audio file means no narration."""
        self.assertEqual(Transcriber(client=FakeGeminiClient()).transcribe(None), "")
        self.assertEqual(Transcriber(client=FakeGeminiClient()).transcribe(Path("/nonexistent.wav")), "")

    def test_openai_size_limit(self):
        """OpenAI transcription refuses files over the upload limit, softly."""
        transcriber = Transcriber(model="whisper-1", inline_limit_bytes=1024, client=object())
        self.assertEqual(transcriber.transcribe(self.audio), "")


if __name__ == "__main__":
    unittest.main()
