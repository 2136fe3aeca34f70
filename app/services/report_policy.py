"""Who may do what to a report."""

from dataclasses import dataclass
from enum import Enum

from app.models.report import Report
from app.models.user import User


class ReportAction(str, Enum):
    DELETE = "delete"
    REPLACE_IMAGE = "replace_image"
    DELETE_IMAGE = "delete_image"


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: str
    # "admin" or "owner" when allowed
    via: str | None = None


# Actions an admin may take on any report
_ADMIN_ACTIONS = {ReportAction.DELETE, ReportAction.DELETE_IMAGE}


def can(caller: User, report: Report, action: ReportAction) -> Decision:
    if caller.is_admin and action in _ADMIN_ACTIONS:
        return Decision(True, "caller is an admin", via="admin")
    if report.owner_id == caller.id:
        return Decision(True, "caller owns the report", via="owner")
    if action == ReportAction.REPLACE_IMAGE:
        return Decision(False, "Not authorized to update the image of this report")
    if action == ReportAction.DELETE_IMAGE:
        return Decision(False, "Not authorized to delete the image of this report")
    return Decision(False, "Not authorized to delete this report")
