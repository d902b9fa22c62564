"""Pydantic models for the DocNote API."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from docnote.models import RecordingDocument


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ApiResponse(ApiModel):
    success: bool = True
    message: str = ""


class ChunkAckResponse(ApiResponse):
    session_id: str
    chunk_number: int = Field(..., ge=1)
    total_chunks: int = Field(..., ge=1)
    remaining: int = Field(..., ge=0, description="Distinct chunks still expected")


class RecordingModel(ApiModel):
    id: Optional[str] = None
    filename: str
    path: str
    storage_url: str
    size: int = Field(..., ge=0)
    uploaded_at: datetime
    transcript: Optional[str] = None
    recommendations: Optional[str] = None
    user_id: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_document(cls, document: RecordingDocument, recording_id: str | None = None) -> "RecordingModel":
        return cls(
            id=recording_id,
            filename=document.filename,
            path=document.storage_path,
            storage_url=document.storage_url,
            size=document.size,
            uploaded_at=document.uploaded_at,
            transcript=document.transcript,
            recommendations=document.recommendations,
            user_id=document.owner_id,
            metadata=dict(document.metadata),
        )


class UploadResponse(ApiResponse):
    recording_id: Optional[str] = None
    file: Optional[RecordingModel] = None
    transcript: Optional[str] = None
    recommendations: Optional[str] = None


class ProcessAudioResponse(UploadResponse):
    is_duplicate: bool = False


class FinalizeRequest(ApiModel):
    session_id: str = Field(..., min_length=1)
    total_chunks: Optional[int] = Field(default=None, ge=1)
    transcribe: bool = Field(default=False, description="Run transcription and recommendations on the merged file")
    api_key: Optional[str] = Field(default=None, description="Per-request AI provider key")


class RecordingListResponse(ApiResponse):
    count: int
    recordings: List[RecordingModel]


class RecordingDetailResponse(ApiResponse):
    recording: RecordingModel


class DeleteRecordingResponse(ApiResponse):
    id: str


class DeleteAllResponse(ApiResponse):
    count: int = Field(..., ge=0, description="Number of recordings deleted")
