from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class FileAttachment(BaseModel):
    id: str
    name: str
    url: str
    type: str = "image/png"
    size: int = 0


class ChatCreate(BaseModel):
    title: Optional[str] = None
    project_id: Optional[UUID] = None


class ChatUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    project_id: Optional[UUID] = None


class ChatResponse(BaseModel):
    id: UUID
    user_id: str
    title: str
    project_id: Optional[UUID] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class MessageCreate(BaseModel):
    role: str = Field("user", pattern="^(user|assistant)$")
    content: str = ""
    file_attachments: List[FileAttachment] = []


class MessageResponse(BaseModel):
    id: UUID
    chat_id: UUID
    role: str
    content: str
    file_attachments: List[FileAttachment] = []
    created_at: datetime

    class Config:
        from_attributes = True
