import uuid

import pytest

from app.models.report import Report
from app.models.user import User, UserRole
from app.services.report_policy import ReportAction, can


def make_user(role: str = UserRole.USER) -> User:
    return User(id=uuid.uuid4(), email=f"{uuid.uuid4().hex}@example.com", role=role)


def make_report(owner: User) -> Report:
    return Report(id=uuid.uuid4(), owner_id=owner.id, status="pending")


@pytest.mark.parametrize("action", list(ReportAction))
def test_owner_may_do_everything(action):
    owner = make_user()

    decision = can(owner, make_report(owner), action)

    assert decision.allowed is True
    assert decision.via == "owner"


@pytest.mark.parametrize("action", list(ReportAction))
def test_stranger_may_do_nothing(action):
    owner, stranger = make_user(), make_user()

    decision = can(stranger, make_report(owner), action)

    assert decision.allowed is False
    assert decision.via is None
    assert decision.reason.startswith("Not authorized")


@pytest.mark.parametrize("action", [ReportAction.DELETE, ReportAction.DELETE_IMAGE])
def test_admin_may_delete_any_report_or_image(action):
    owner, admin = make_user(), make_user(UserRole.ADMIN)

    decision = can(admin, make_report(owner), action)

    assert decision.allowed is True
    assert decision.via == "admin"


def test_admin_may_not_replace_someone_elses_image():
    owner, admin = make_user(), make_user(UserRole.ADMIN)

    decision = can(admin, make_report(owner), ReportAction.REPLACE_IMAGE)

    assert decision.allowed is False


def test_admin_owner_deletes_image_as_admin():
    admin = make_user(UserRole.ADMIN)

    assert can(admin, make_report(admin), ReportAction.DELETE_IMAGE).via == "admin"
    assert can(admin, make_report(admin), ReportAction.REPLACE_IMAGE).via == "owner"

