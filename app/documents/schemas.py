from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime
from app.models import DocumentType


class DocumentUpdate(BaseModel):
    description: Optional[str] = None
    is_public: Optional[bool] = None


class DocumentShare(BaseModel):
    user_ids: List[str] = Field(..., min_length=1)


class DocumentResponse(BaseModel):
    id: str
    name: str
    original_name: str
    mime_type: str
    size: int
    type: DocumentType
    storage_path: str
    storage_url: Optional[str] = None
    description: Optional[str] = None
    is_public: bool
    shared_with: Optional[List[str]] = None
    case_id: Optional[str] = None
    user_id: str
    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True
