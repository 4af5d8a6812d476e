from sqlalchemy import Column, String, Integer, Boolean, DateTime
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from models.base import Base

USER_ROLES = ['user', 'admin']


class User(Base):
    """
    Dashboard user. Owns content records and activity log entries.

    Users are never removed from the table: deleting one sets ``deleted_at``
    so that the records and activities pointing at it stay intact.
    """
    __tablename__ = 'users'

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(30), unique=True, nullable=False, index=True)
    email = Column(String(255), unique=True, nullable=False)
    role = Column(String(20), default='user', nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=func.current_timestamp())
    deleted_at = Column(DateTime, nullable=True)

    contents = relationship("Content", back_populates="creator")
    activities = relationship("UserActivity", back_populates="user")

    def to_dict(self):
        return {
            'id': self.id,
            'username': self.username,
            'email': self.email,
            'role': self.role,
            'is_active': self.is_active,
            'created_at': self.created_at.isoformat() if self.created_at else None
        }

    def __repr__(self):
        return f"<User(username='{self.username}', role='{self.role}')>"
