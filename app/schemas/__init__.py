from app.schemas.common import ApiResponse
from app.schemas.report import (
    BulkUpdateRequest,
    BulkUpdateResult,
    DepartmentAssign,
    ImageDelete,
    ImageType,
    NearbyReportResponse,
    ReportCategory,
    ReportCreate,
    ReportPriority,
    ReportResponse,
    ReportStats,
    ReportStatus,
    ReportUpdate,
)
from app.schemas.user import AuthResult, Token, TokenPayload, UserCreate, UserLogin, UserResponse

__all__ = [
    "ApiResponse",
    "UserCreate",
    "UserLogin",
    "UserResponse",
    "Token",
    "TokenPayload",
    "AuthResult",
    "ReportCategory",
    "ReportStatus",
    "ReportPriority",
    "ImageType",
    "ReportCreate",
    "ReportUpdate",
    "ReportResponse",
    "NearbyReportResponse",
    "DepartmentAssign",
    "ImageDelete",
    "BulkUpdateRequest",
    "BulkUpdateResult",
    "ReportStats",
]
