from sqlalchemy import Column, String, Integer, DateTime, ForeignKey, Index, JSON
from sqlalchemy.orm import relationship
from datetime import datetime
from models.base import Base

ACTIVITY_ACTIONS = ['create', 'update', 'delete', 'import', 'export', 'register', 'role_change', 'status_change']


class UserActivity(Base):
    """
    Append-only audit log of user actions.

    ``user_id`` is nullable so that system actions (CLI imports, anonymous
    API calls) are still recorded.
    """
    __tablename__ = 'user_activities'

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey('users.id'), nullable=True, index=True)
    action = Column(String(30), nullable=False, index=True)
    details = Column(JSON, default=dict)
    ip_address = Column(String(64))
    user_agent = Column(String(255))
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    user = relationship("User", back_populates="activities")

    __table_args__ = (
        Index('idx_activity_created', 'created_at'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'username': self.user.username if self.user else None,
            'action': self.action,
            'details': self.details or {},
            'ip_address': self.ip_address,
            'user_agent': self.user_agent,
            'created_at': self.created_at.isoformat() if self.created_at else None
        }

    def __repr__(self):
        return f"<UserActivity(action='{self.action}', user_id={self.user_id})>"
