"""
In-app notification written after a reservation commits.
"""

from sqlalchemy import Column, Integer, String, Boolean, Index

from eventrental.db.base import Base, TimestampMixin


class Notification(Base, TimestampMixin):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, nullable=False)
    kind = Column(String(50), nullable=False)
    title = Column(String(255), nullable=False)
    message = Column(String(1000), nullable=False)
    event_id = Column(Integer, nullable=True)
    registration_id = Column(Integer, nullable=True)
    read = Column(Boolean, nullable=False, default=False)

    __table_args__ = (
        Index("ix_notifications_user_read", "user_id", "read"),
    )

    def __repr__(self) -> str:
        return f"<Notification(id={self.id}, user={self.user_id}, kind={self.kind})>"
