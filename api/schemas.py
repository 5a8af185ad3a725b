"""
Pydantic schemas for API request/response validation
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Accepts and emits camelCase field names, as the web client expects"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ============================================================================
# GENERIC
# ============================================================================

class MessageResponse(CamelModel):
    """Plain message response"""
    message: str


class HealthResponse(CamelModel):
    """Health check response"""
    status: str


# ============================================================================
# UPLOAD SCHEMAS
# ============================================================================

class UploadResponse(CamelModel):
    """Response after a video is stored and registered as a workflow"""
    message: str
    workflow_id: int


class UploadSessionCreate(CamelModel):
    """Schema for opening a chunked upload session"""
    filename: str = Field(..., min_length=1, description="Original file name, including extension")
    title: Optional[str] = Field(None, description="Workflow title; defaults to the file name")
    total_chunks: int = Field(..., ge=1, description="Number of chunks the client will send")


class UploadSessionResponse(CamelModel):
    """State of a chunked upload session"""
    session_id: str
    filename: str
    title: str
    total_chunks: int
    complete: bool
    missing_chunks: list[int]
    workflow_id: Optional[int] = None
    error: Optional[str] = Field(None, description="Why the last assembled upload was rejected")
