from .models import UserSession
from .session import SessionManager

__all__ = ["SessionManager", "UserSession"]
