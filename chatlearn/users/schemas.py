from pydantic import BaseModel
from datetime import datetime


class UserStore(BaseModel):
    email: str | None = None
    full_name: str | None = None


class UserOut(BaseModel):
    user_id: str
    email: str | None
    full_name: str | None = None
    created_at: datetime

    class Config:
        from_attributes = True


class UserDeleteResponse(BaseModel):
    message: str = "Account deleted successfully"
