from .base import Base
from .user import User
from .content import Content
from .user_activity import UserActivity

__all__ = ['Base', 'User', 'Content', 'UserActivity']
