"""Blob storage for uploaded videos, including resumable chunked uploads."""

import logging
import re
import shutil
import threading
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import BinaryIO

from errors import UploadError

_module_logger = logging.getLogger(__name__)

BLOB_SCHEME = "blob://"


def is_blob_ref(ref: str) -> bool:
    """Whether a video reference points into a blob store rather than the local filesystem."""
    return str(ref).startswith(BLOB_SCHEME)


def _safe_filename(filename: str) -> str:
    name = Path(filename or "video").name
    return re.sub(r"[^A-Za-z0-9._-]+", "_", name) or "video"


@dataclass
class UploadSession:
    """A chunked upload in progress.

    Chunks may arrive in any order and may be re-sent; the blob is assembled
    once every index in ``range(total_chunks)`` has been received.
    """

    id: str
    filename: str
    title: str
    total_chunks: int
    received: set[int] = field(default_factory=set)
    blob_ref: str | None = None
    workflow_id: int | None = None
    error: str | None = None
    created_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    @property
    def complete(self) -> bool:
        return self.blob_ref is not None

    def missing_chunks(self) -> list[int]:
        return [i for i in range(self.total_chunks) if i not in self.received]

    def to_dict(self) -> dict:
        return {
            "sessionId": self.id,
            "filename": self.filename,
            "title": self.title,
            "totalChunks": self.total_chunks,
            "complete": self.complete,
            "missingChunks": [] if self.complete else self.missing_chunks(),
            "workflowId": self.workflow_id,
            "error": self.error,
        }


class BlobStore(ABC):
    """Storage for uploaded video and other opaque bytes.

    Objects are addressed by references of the form ``blob://<key>``.
    """

    def new_key(self, filename: str) -> str:
        """Build a unique key that keeps the original file extension."""
        return f"{uuid.uuid4().hex[:12]}_{_safe_filename(filename)}"

    def ref(self, key: str) -> str:
        return f"{BLOB_SCHEME}{key}"

    @abstractmethod
    def put(self, key: str, data: bytes | BinaryIO) -> str:
        """Store data under a key and return its reference."""

    @abstractmethod
    def get(self, ref: str) -> bytes:
        """Read the bytes behind a reference."""

    @abstractmethod
    def delete(self, ref: str) -> None:
        """Delete an object. Deleting a missing object is not an error."""

    @abstractmethod
    def download(self, ref: str, dest: Path) -> Path:
        """Copy an object to a local file and return its path."""

    @abstractmethod
    def path_for(self, ref: str) -> Path:
        """Local filesystem path of an object, for inspection without copying."""

    @abstractmethod
    def create_upload_session(self, filename: str, title: str, total_chunks: int) -> UploadSession:
        """Open a chunked upload session."""

    @abstractmethod
    def write_chunk(self, session_id: str, index: int, data: bytes) -> UploadSession:
        """Store one chunk; assembles the object when the last one arrives."""

    @abstractmethod
    def get_session(self, session_id: str) -> UploadSession:
        """Look up an upload session."""

    @abstractmethod
    def reset_session(self, session_id: str, error: str) -> UploadSession:
        """Discard an assembled upload that was rejected so every chunk can be sent again."""

    @abstractmethod
    def close_session(self, session_id: str) -> None:
        """Forget a finished session and remove any chunks it still holds."""


class LocalBlobStore(BlobStore):
    """Blob store backed by a directory on the local filesystem."""

    def __init__(self, root: Path):
        self.root = Path(root)
        self.objects_dir = self.root / "videos"
        self.chunks_dir = self.root / "chunks"
        self.objects_dir.mkdir(parents=True, exist_ok=True)
        self.chunks_dir.mkdir(parents=True, exist_ok=True)

        self._sessions: dict[str, UploadSession] = {}
        self._lock = threading.Lock()

    def path_for(self, ref: str) -> Path:
        """Resolve a reference (or bare key) to its file path inside the store."""
        key = ref[len(BLOB_SCHEME):] if is_blob_ref(ref) else ref
        path = (self.objects_dir / key).resolve()
        if path.parent != self.objects_dir.resolve():
            raise ValueError(f"Invalid blob reference: {ref}")
        return path

    def put(self, key: str, data: bytes | BinaryIO) -> str:
        path = self.path_for(key)
        if isinstance(data, (bytes, bytearray)):
            path.write_bytes(data)
        else:
            with open(path, "wb") as f:
                shutil.copyfileobj(data, f)
        return self.ref(key)

    def get(self, ref: str) -> bytes:
        path = self.path_for(ref)
        if not path.exists():
            raise FileNotFoundError(f"Blob not found: {ref}")
        return path.read_bytes()

    def delete(self, ref: str) -> None:
        try:
            self.path_for(ref).unlink(missing_ok=True)
        except OSError as e:
            _module_logger.error(f"Failed to delete blob {ref}: {e}")

    def download(self, ref: str, dest: Path) -> Path:
        path = self.path_for(ref)
        if not path.exists():
            raise FileNotFoundError(f"Blob not found: {ref}")
        dest = Path(dest)
        shutil.copyfile(path, dest)
        return dest

    def create_upload_session(self, filename: str, title: str, total_chunks: int) -> UploadSession:
        if not filename:
            raise UploadError("filename is required")
        if total_chunks < 1:
            raise UploadError("totalChunks must be at least 1")

        session = UploadSession(
            id=uuid.uuid4().hex,
            filename=_safe_filename(filename),
            title=title,
            total_chunks=total_chunks,
        )
        with self._lock:
            self._sessions[session.id] = session
        return session

    def get_session(self, session_id: str) -> UploadSession:
        with self._lock:
            session = self._sessions.get(session_id)
        if session is None:
            raise UploadError(f"Unknown upload session: {session_id}")
        return session

    def _chunk_path(self, session_id: str, index: int) -> Path:
        return self.chunks_dir / f"{session_id}.part{index}"

    def write_chunk(self, session_id: str, index: int, data: bytes) -> UploadSession:
        session = self.get_session(session_id)
        if not 0 <= index < session.total_chunks:
            raise UploadError(
                f"Chunk index {index} out of range for {session.total_chunks} chunks"
            )

        with self._lock:
            if session.complete:
                raise UploadError("Upload session is already complete")

            self._chunk_path(session_id, index).write_bytes(data)
            session.received.add(index)
            session.error = None

            if len(session.received) == session.total_chunks:
                key = self.new_key(session.filename)
                with open(self.path_for(key), "wb") as out:
                    for i in range(session.total_chunks):
                        with open(self._chunk_path(session_id, i), "rb") as part:
                            shutil.copyfileobj(part, out)
                session.blob_ref = self.ref(key)
                self._cleanup_chunks(session)

        return session

    def _cleanup_chunks(self, session: UploadSession) -> None:
        for i in range(session.total_chunks):
            try:
                self._chunk_path(session.id, i).unlink(missing_ok=True)
            except OSError as e:
                _module_logger.error(f"Failed to delete chunk {i} of session {session.id}: {e}")

    def reset_session(self, session_id: str, error: str) -> UploadSession:
        session = self.get_session(session_id)
        with self._lock:
            if session.blob_ref:
                self.delete(session.blob_ref)
            self._cleanup_chunks(session)
            session.blob_ref = None
            session.received.clear()
            session.error = error
        return session

    def close_session(self, session_id: str) -> None:
        with self._lock:
            session = self._sessions.pop(session_id, None)
        if session is not None:
            self._cleanup_chunks(session)
