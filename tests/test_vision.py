"""
Unit tests for frame description.
"""

import base64
import io
import tempfile
import unittest
from pathlib import Path

from PIL import Image

from fakes import ScriptedLLMClient
from media.video_processor import FrameInfo
from media.vision import FrameDescriber


class TestFrameDescriber(unittest.TestCase):
    """Test per-frame scene description."""

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.tmp = Path(self._tmp.name)

    def tearDown(self):
        self._tmp.cleanup()

    def make_frame(self, index, size=(64, 48), mode="RGB"):
        path = self.tmp / f"frame_{index:03d}.png"
        Image.new(mode, size).save(path)
        return FrameInfo(path=path, timestamp=float(index), index=index)

    def test_descriptions_in_frame_order(self):
        """Each frame gets its own description, in order."""
        client = ScriptedLLMClient(["Excel open ", "Gmail compose"])
        frames = [self.make_frame(0), self.make_frame(1)]

        descriptions = FrameDescriber(client).describe_frames(frames)

        self.assertEqual([d.description for d in descriptions], ["Excel open", "Gmail compose"])
        self.assertEqual([d.timestamp for d in descriptions], [0.0, 1.0])
        self.assertTrue(all(call["stage"] == "vision" for call in client.calls))

    def test_large_frames_downscaled(self):
        """Frames are downscaled to the maximum dimension and sent as JPEG."""
        client = ScriptedLLMClient(["desc"])
        FrameDescriber(client, max_image_dimension=100).describe_frames([self.make_frame(0, (400, 200), "RGBA")])

        image = client.calls[0]["content"][0]
        self.assertEqual(image["media_type"], "image/jpeg")
        with Image.open(io.BytesIO(base64.b64decode(image["data"]))) as sent:
            self.assertEqual(sent.size, (100, 50))
            self.assertEqual(sent.format, "JPEG")

    def test_describe_image_bytes(self):
        """Raw image bytes are downscaled, sent as JPEG and the reply is trimmed."""
        buffer = io.BytesIO()
        Image.new("P", (300, 600)).save(buffer, format="PNG")
        client = ScriptedLLMClient(["  Gmail inbox with one unread message \n"])

        text = FrameDescriber(client, max_image_dimension=200).describe_image(buffer.getvalue())

        self.assertEqual(text, "Gmail inbox with one unread message")
        call = client.calls[0]
        self.assertEqual(call["stage"], "vision")
        with Image.open(io.BytesIO(base64.b64decode(call["content"][0]["data"]))) as sent:
            self.assertEqual(sent.size, (100, 200))

    def test_describe_image_rejects_garbage(self):
        """Bytes that are not an image fail before any model call."""
        client = ScriptedLLMClient([])
        with self.assertRaises(OSError):
            FrameDescriber(client).describe_image(b"not an image")
        self.assertEqual(client.calls, [])

    def test_no_frames(self):
        """No frames means no model calls."""
        client = ScriptedLLMClient([])
        self.assertEqual(FrameDescriber(client).describe_frames([]), [])
        self.assertEqual(client.calls, [])

    def test_failure_propagates(self):
        """A failed description fails the batch."""
        client = ScriptedLLMClient([RuntimeError("503")])
        with self.assertRaises(RuntimeError):
            FrameDescriber(client).describe_frames([self.make_frame(0)])


if __name__ == "__main__":
    unittest.main()
