from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class ChatRequest(BaseModel):
    message: str = ""
    chat_id: UUID
    user_id: str = Field(..., min_length=1)
    file_analysis: Optional[str] = None
    model: Optional[str] = None


class ChatReply(BaseModel):
    type: str  # 'text' | 'image_generated' | 'error'
    content: str
    image_url: Optional[str] = None
    prompt: Optional[str] = None
    message_id: Optional[UUID] = None
    job_ids: Optional[List[UUID]] = None
