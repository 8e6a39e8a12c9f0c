from uuid import UUID

from pydantic import BaseModel, Field


class SaveImageRequest(BaseModel):
    imageBase64: str = Field(..., min_length=1)
    fileName: str = Field(..., min_length=1)
    chatId: str = Field(..., min_length=1)
    userId: str = Field(..., min_length=1)
    imageType: str = "edited"


class SaveImageResponse(BaseModel):
    success: bool = True
    url: str
    path: str
    message: str = "Image saved successfully"


class EditImageRequest(BaseModel):
    imageData: str = Field(..., min_length=1)
    prompt: str = Field(..., min_length=1)
    fileName: str = "image.png"
    chatId: UUID
    userId: str


class EditImageResponse(BaseModel):
    success: bool = True
    imageUrl: str
    message: str
