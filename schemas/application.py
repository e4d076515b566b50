from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import BaseModel, Field


class ApplicationFinalize(BaseModel):
    """Body of the finalize call. Both fields are optional."""

    form_data: Optional[dict[str, Any]] = Field(None, alias="formData")
    status: Optional[str] = None

    model_config = {"populate_by_name": True, "extra": "ignore"}


class ApplicationStatusUpdate(BaseModel):
    status: Optional[str] = None
    stage: Optional[str] = None
    override: bool = False
    note: Optional[str] = None


class DocumentCreate(BaseModel):
    document_type: str = Field(..., min_length=1, alias="documentType")
    file_name: str = Field(..., min_length=1, alias="fileName")
    storage_key: Optional[str] = Field(None, alias="storageKey")
    file_size: Optional[int] = Field(None, ge=0, alias="fileSize")
    mime_type: Optional[str] = Field(None, alias="mimeType")

    model_config = {"populate_by_name": True}


class DocumentUpdate(BaseModel):
    status: Literal["pending", "accepted", "rejected"]
