from app.models.report import Report
from app.models.user import User

__all__ = [
    "User",
    "Report",
]
