"""
Workflow API Server

FastAPI application for uploading screen recordings, driving their
processing and editing the resulting block graph.

Usage:
    uvicorn api.server:create_app --factory --host 0.0.0.0 --port 5000
    # or
    python main.py serve
"""

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Optional

from fastapi import FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from analyzer.graph_validation import validate_block_structure
from analyzer.schema import BlockStructure, WorkflowStatus
from config import Config, get_config
from errors import (
    ArtifactOrderError,
    PipelineBusyError,
    UploadError,
    WorkflowNotFoundError,
)
from pipeline.blob_store import BlobStore, LocalBlobStore
from pipeline.orchestrator import PipelineOrchestrator
from pipeline.store import InMemoryWorkflowStore, WorkflowStore
from .schemas import (
    HealthResponse,
    MessageResponse,
    UploadResponse,
    UploadSessionCreate,
    UploadSessionResponse,
)

logger = logging.getLogger(__name__)


def create_app(
    config: Optional[Config] = None,
    store: Optional[WorkflowStore] = None,
    blob_store: Optional[BlobStore] = None,
    orchestrator: Optional[PipelineOrchestrator] = None,
) -> FastAPI:
    """Build the API application.

    Collaborators not supplied are created from the config: an in-memory
    workflow store, a local blob store under ``uploads_dir`` and an
    orchestrator wired with the configured models.
    """
    config = config or get_config()
    store = store or InMemoryWorkflowStore()
    blob_store = blob_store or LocalBlobStore(config.uploads_dir)
    orchestrator = orchestrator or PipelineOrchestrator.from_config(config, store, blob_store)
    extractor = orchestrator.extractor

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        orchestrator.shutdown(wait=False)

    app = FastAPI(
        title="Workflow Block Builder API",
        description="Turns narrated screen recordings into editable workflow block graphs",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.store = store
    app.state.blob_store = blob_store
    app.state.orchestrator = orchestrator

    # ============================================================================
    # EXCEPTION HANDLERS
    # ============================================================================

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        return JSONResponse(status_code=exc.status_code, content={"message": exc.detail})

    @app.exception_handler(WorkflowNotFoundError)
    async def not_found_handler(request: Request, exc: WorkflowNotFoundError):
        return JSONResponse(status_code=404, content={"message": "Workflow not found"})

    @app.exception_handler(PipelineBusyError)
    async def busy_handler(request: Request, exc: PipelineBusyError):
        return JSONResponse(status_code=409, content={"message": str(exc)})

    @app.exception_handler(ArtifactOrderError)
    async def artifact_order_handler(request: Request, exc: ArtifactOrderError):
        return JSONResponse(status_code=409, content={"message": str(exc)})

    @app.exception_handler(UploadError)
    async def upload_error_handler(request: Request, exc: UploadError):
        return JSONResponse(status_code=400, content={"message": str(exc)})

    # ============================================================================
    # HELPERS
    # ============================================================================

    def register_video(ref: str, title: str) -> int:
        """Validate a stored video and create its workflow; invalid videos are deleted."""
        validation = extractor.validate(blob_store.path_for(ref))
        if not validation.valid:
            blob_store.delete(ref)
            raise HTTPException(status_code=400, detail=validation.reason or "Invalid video file")

        record = store.create(title=title, video_ref=ref)
        logger.info(f"Registered workflow {record.id} for {ref}")
        return record.id

    # ============================================================================
    # HEALTH
    # ============================================================================

    @app.get("/api/health", response_model=HealthResponse)
    def health():
        return HealthResponse(status="healthy")

    # ============================================================================
    # UPLOAD
    # ============================================================================

    @app.post("/api/upload", response_model=UploadResponse, status_code=201)
    def upload_video(
        file: Optional[UploadFile] = File(None),
        title: Optional[str] = Form(None),
    ):
        """Store a video in one request and register it as a workflow."""
        if file is None or not file.filename:
            raise HTTPException(status_code=400, detail="No file uploaded")

        ref = blob_store.put(blob_store.new_key(file.filename), file.file)
        workflow_id = register_video(ref, title or Path(file.filename).stem or "Untitled Workflow")
        return UploadResponse(message="Video uploaded successfully", workflow_id=workflow_id)

    @app.post("/api/upload/sessions", response_model=UploadSessionResponse, status_code=201)
    def create_upload_session(request: UploadSessionCreate):
        """Open a resumable chunked upload."""
        session = blob_store.create_upload_session(
            filename=request.filename,
            title=request.title or Path(request.filename).stem,
            total_chunks=request.total_chunks,
        )
        return session.to_dict()

    @app.get("/api/upload/sessions/{session_id}", response_model=UploadSessionResponse)
    def get_upload_session(session_id: str):
        """Report which chunks are still missing, so a client can resume."""
        return blob_store.get_session(session_id).to_dict()

    @app.put("/api/upload/sessions/{session_id}/chunks/{index}", response_model=UploadSessionResponse)
    async def upload_chunk(session_id: str, index: int, request: Request):
        """Store one chunk; the last chunk assembles the video and registers the workflow."""
        data = await request.body()
        if not data:
            raise HTTPException(status_code=400, detail="Chunk body is empty")

        session = await run_in_threadpool(blob_store.write_chunk, session_id, index, data)
        if session.complete and session.workflow_id is None:
            try:
                session.workflow_id = await run_in_threadpool(register_video, session.blob_ref, session.title)
            except HTTPException as e:
                # Rejected video: every chunk has to be sent again
                await run_in_threadpool(blob_store.reset_session, session_id, e.detail)
                raise
            blob_store.close_session(session_id)
        return session.to_dict()

    # ============================================================================
    # WORKFLOWS
    # ============================================================================

    @app.post("/api/workflow/{workflow_id}/process", response_model=MessageResponse)
    def start_processing(workflow_id: int):
        """Begin processing in the background; poll the status endpoint for progress."""
        orchestrator.start(workflow_id)
        return MessageResponse(message="Workflow processing started")

    @app.post("/api/workflow/{workflow_id}/cancel", response_model=MessageResponse)
    def cancel_processing(workflow_id: int):
        """Stop processing at the next stage boundary."""
        if not orchestrator.cancel(workflow_id):
            raise HTTPException(status_code=409, detail="Workflow is not processing")
        return MessageResponse(message="Workflow cancellation requested")

    @app.get("/api/workflow/{workflow_id}/status")
    def get_workflow_status(workflow_id: int):
        return orchestrator.get_status(workflow_id).to_dict()

    @app.get("/api/workflow/{workflow_id}")
    def get_workflow(workflow_id: int):
        return store.get(workflow_id).to_dict()

    @app.get("/api/workflows")
    def list_workflows():
        return [record.to_dict() for record in store.list()]

    @app.put("/api/workflow/{workflow_id}/blocks")
    async def update_blocks(workflow_id: int, request: Request):
        """Replace the block graph after client-side edits."""
        try:
            payload = await request.json()
        except ValueError:
            payload = None
        return await run_in_threadpool(replace_blocks, workflow_id, payload)

    def replace_blocks(workflow_id: int, payload: Any) -> dict:
        record = store.get(workflow_id)

        if (
            not isinstance(payload, dict)
            or not isinstance(payload.get("blocks"), list)
            or not isinstance(payload.get("connections"), list)
        ):
            raise HTTPException(status_code=400, detail="Invalid block structure data")
        if payload.get("sources") is not None and not isinstance(payload["sources"], list):
            raise HTTPException(status_code=400, detail="Invalid block structure data")
        for key in ("blocks", "sources", "connections"):
            if not all(isinstance(item, dict) for item in payload.get(key) or []):
                raise HTTPException(status_code=400, detail=f"Every entry in '{key}' must be an object")

        structure = BlockStructure.from_dict(payload)
        errors = validate_block_structure(structure)
        if errors:
            raise HTTPException(status_code=400, detail="; ".join(errors))

        if record.status == WorkflowStatus.PROCESSING:
            raise HTTPException(status_code=409, detail="Workflow is still processing")

        return store.save_block_structure(workflow_id, structure).to_dict()

    return app
