import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, String, Uuid

from ..database import Base


class FavoriteTool(Base):
    __tablename__ = "favorite_tools"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(String, nullable=False, index=True)
    tool_name = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
