from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, String

from ..database import Base


class User(Base):
    """Profile row keyed by the Clerk user id"""
    __tablename__ = "users"

    user_id = Column(String, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=True)
    full_name = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    def __repr__(self):
        return f"<User {self.user_id}>"
