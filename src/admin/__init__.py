"""Administrative operations with HTTP-shaped results."""

from src.admin.schemas import AdminResult
from src.admin.service import AdminService

__all__ = ["AdminResult", "AdminService"]
