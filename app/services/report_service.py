"""Report lifecycle: create, triage, upvote, images, delete, stats, nearby search."""

import asyncio
import logging
from uuid import UUID

from geoalchemy2 import Geography
from geoalchemy2.functions import ST_Distance, ST_DWithin, ST_MakePoint, ST_SetSRID
from sqlalchemy import cast, func, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from app.core.exceptions import AuthorizationError, NotFoundError, RequiredFieldError, ValidationError
from app.models.report import Report
from app.models.user import User
from app.schemas.report import (
    BulkUpdateResult,
    ImageType,
    ReportCreate,
    ReportPriority,
    ReportStats,
    ReportStatus,
    ReportUpdate,
)
from app.services.asset_gateway import REPORT_PHOTO, AssetGateway
from app.services.report_policy import ReportAction, can

logger = logging.getLogger(__name__)


def priority_for_severity(severity: int | None) -> str:
    """Severity 1-5 maps to priority: >=4 high, <=2 low, else medium."""
    if severity is None:
        return ReportPriority.medium.value
    if severity >= 4:
        return ReportPriority.high.value
    if severity <= 2:
        return ReportPriority.low.value
    return ReportPriority.medium.value


def toggled_upvotes(upvotes: list[str] | None, user_id: UUID) -> list[str]:
    """New upvoter list with user_id added if absent, removed if present."""
    voters = list(upvotes or [])
    voter = str(user_id)
    if voter in voters:
        voters.remove(voter)
    else:
        voters.append(voter)
    return voters


def _with_owner():
    return select(Report).options(selectinload(Report.owner))


async def _commit_or_discard(
    db: AsyncSession,
    assets: AssetGateway,
    uploaded_url: str | None,
    context: str,
) -> None:
    """Commit; on failure roll back and remove the image uploaded for this write."""
    try:
        await db.commit()
    except SQLAlchemyError:
        await db.rollback()
        if uploaded_url:
            result = await assets.delete(uploaded_url)
            result.acknowledge(context)
        raise


async def get_report(db: AsyncSession, report_id: UUID) -> Report | None:
    """Get report by ID with its owner loaded, always re-read from the database."""
    result = await db.execute(
        _with_owner()
        .where(Report.id == report_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_report_or_404(db: AsyncSession, report_id: UUID) -> Report:
    report = await get_report(db, report_id)
    if report is None:
        raise NotFoundError("Report not found", resource="report")
    return report


async def create_report(
    db: AsyncSession,
    owner_id: UUID,
    data: ReportCreate,
    assets: AssetGateway,
    photo: bytes | None = None,
) -> Report:
    """
    Create a pending report for owner_id.

    The photo is hosted first; a failed upload raises before any row exists.
    A GPS point is stored only when both latitude and longitude are given.
    """
    image_url = None
    if photo:
        asset = await assets.upload(photo, REPORT_PHOTO)
        image_url = asset.url

    report = Report(
        owner_id=owner_id,
        category=data.category.value,
        title=data.title or data.category.value,
        description=data.description,
        address=data.address,
        image_url=image_url,
        status=ReportStatus.pending.value,
        priority=priority_for_severity(data.severity),
        severity=data.severity,
        upvotes=[],
    )

    if data.latitude is not None and data.longitude is not None:
        report.set_location(data.longitude, data.latitude)
    elif data.latitude is not None or data.longitude is not None:
        logger.info("Only one GPS coordinate given, storing report without location")

    db.add(report)
    await _commit_or_discard(db, assets, image_url, "unsaved report")

    logger.info(f"Report {report.id} created by {owner_id}")
    return await get_report_or_404(db, report.id)


async def list_reports(db: AsyncSession, owner_id: UUID | None = None) -> list[Report]:
    """All reports, or one user's, newest first."""
    query = _with_owner().order_by(Report.created_at.desc())
    if owner_id is not None:
        query = query.where(Report.owner_id == owner_id)
    result = await db.execute(query)
    return list(result.scalars().all())


async def update_report_status(
    db: AsyncSession,
    report_id: UUID,
    patch: ReportUpdate,
    assets: AssetGateway,
    after_image: bytes | None = None,
) -> Report:
    """
    Apply an admin patch. Resolving needs an after image, either uploaded
    with this request or already stored.
    """
    report = await get_report_or_404(db, report_id)
    values = patch.model_dump(mode="json", exclude_unset=True, exclude_none=True)

    if (
        values.get("status") == ReportStatus.resolved.value
        and not after_image
        and not report.after_image_url
    ):
        raise ValidationError(
            "An after image is required to resolve a report",
            field="afterImage",
        )

    uploaded_url = replaced_after_url = None
    if after_image:
        asset = await assets.upload(after_image, REPORT_PHOTO)
        uploaded_url = asset.url
        replaced_after_url = report.after_image_url
        report.after_image_url = asset.url

    for field, value in values.items():
        setattr(report, field, value)

    await _commit_or_discard(db, assets, uploaded_url, f"report {report_id} unsaved after image")

    if replaced_after_url:
        result = await assets.delete(replaced_after_url)
        result.acknowledge(f"report {report_id} previous after image")

    logger.info(f"Report {report_id} updated: {values}")
    return await get_report_or_404(db, report_id)


async def assign_department(db: AsyncSession, report_id: UUID, department: str) -> Report:
    report = await get_report_or_404(db, report_id)
    report.assigned_department = department
    await db.commit()
    logger.info(f"Report {report_id} assigned to {department}")
    return await get_report_or_404(db, report_id)


async def toggle_upvote(db: AsyncSession, report_id: UUID, user_id: UUID) -> Report:
    """
    Add the user's upvote if absent, remove it if present.

    Read-modify-write without a version check: two concurrent toggles on the
    same report can lose one update.
    """
    report = await get_report_or_404(db, report_id)

    # Assign a new list so the JSON column is flagged as changed
    report.upvotes = toggled_upvotes(report.upvotes, user_id)

    await db.commit()
    return await get_report_or_404(db, report_id)


async def replace_owner_image(
    db: AsyncSession,
    report_id: UUID,
    caller: User,
    photo: bytes | None,
    assets: AssetGateway,
) -> Report:
    """Owner swaps the report photo while the report is still pending."""
    if not photo:
        raise RequiredFieldError("Please upload an image", field="photo")

    report = await get_report_or_404(db, report_id)

    decision = can(caller, report, ReportAction.REPLACE_IMAGE)
    if not decision.allowed:
        raise AuthorizationError(decision.reason)

    if report.status != ReportStatus.pending.value:
        raise ValidationError("Image can only be changed while the report is pending")

    asset = await assets.upload(photo, REPORT_PHOTO)
    old_url = report.image_url
    report.image_url = asset.url
    await _commit_or_discard(db, assets, asset.url, f"report {report_id} unsaved image")

    if old_url:
        result = await assets.delete(old_url)
        result.acknowledge(f"report {report_id} replaced image")

    return await get_report_or_404(db, report_id)


async def delete_image(
    db: AsyncSession,
    report_id: UUID,
    caller: User,
    assets: AssetGateway,
    image_type: ImageType | None = None,
) -> Report:
    """
    Clear one of the report images.

    Admins name the slot (before/after) and may do so at any status. Owners
    can only clear the before image, and only while the report is pending.
    """
    report = await get_report_or_404(db, report_id)

    decision = can(caller, report, ReportAction.DELETE_IMAGE)
    if not decision.allowed:
        raise AuthorizationError(decision.reason)

    if decision.via == "admin":
        if image_type is None:
            raise ValidationError(
                "imageType must be 'before' or 'after'", field="imageType"
            )
        field = "image_url" if image_type == ImageType.before else "after_image_url"
    else:
        if report.status != ReportStatus.pending.value:
            raise ValidationError("Image can only be removed while the report is pending")
        field = "image_url"

    url = getattr(report, field)
    if not url:
        raise ValidationError("Report has no such image to delete", field="imageType")

    result = await assets.delete(url)
    result.acknowledge(f"report {report_id} {field}")

    setattr(report, field, None)
    await db.commit()
    return await get_report_or_404(db, report_id)


async def delete_report(
    db: AsyncSession,
    report_id: UUID,
    caller: User,
    assets: AssetGateway,
) -> None:
    """Remove a report. Each hosted image is cleaned up independently."""
    report = await get_report_or_404(db, report_id)

    decision = can(caller, report, ReportAction.DELETE)
    if not decision.allowed:
        raise AuthorizationError(decision.reason)

    for label, url in (("before", report.image_url), ("after", report.after_image_url)):
        if url:
            result = await assets.delete(url)
            result.acknowledge(f"report {report_id} {label} image")

    await db.delete(report)
    await db.commit()
    logger.info(f"Report {report_id} deleted by {caller.id} ({decision.via})")


async def get_stats(db: AsyncSession) -> ReportStats:
    """
    Four counts run concurrently, each on its own short-lived session.
    They are not taken from one snapshot, so under concurrent writes the
    per-status numbers may not add up to the total.
    """
    sessions = async_sessionmaker(db.bind, class_=AsyncSession, expire_on_commit=False)

    async def count(*criteria) -> int:
        async with sessions() as session:
            result = await session.execute(select(func.count(Report.id)).where(*criteria))
            return result.scalar() or 0

    total, pending, in_progress, resolved = await asyncio.gather(
        count(),
        count(Report.status == ReportStatus.pending.value),
        count(Report.status == ReportStatus.in_progress.value),
        count(Report.status == ReportStatus.resolved.value),
    )
    return ReportStats(total=total, pending=pending, in_progress=in_progress, resolved=resolved)


async def find_nearby(
    db: AsyncSession,
    longitude: float,
    latitude: float,
    radius_km: float,
) -> list[Report]:
    """Unresolved reports within radius_km of the point, nearest first (PostGIS geography)."""
    if not -90 <= latitude <= 90 or not -180 <= longitude <= 180:
        raise ValidationError("Invalid coordinates")
    if radius_km <= 0:
        raise ValidationError("Radius must be greater than 0", field="radius")

    origin = cast(
        ST_SetSRID(ST_MakePoint(longitude, latitude), 4326),
        Geography(geometry_type="POINT", srid=4326),
    )
    query = (
        _with_owner()
        .where(
            Report.status != ReportStatus.resolved.value,
            ST_DWithin(Report.point, origin, radius_km * 1000),
        )
        .order_by(ST_Distance(Report.point, origin))
    )
    result = await db.execute(query)
    return list(result.scalars().all())


async def bulk_update(
    db: AsyncSession,
    report_ids: list[UUID],
    patch: ReportUpdate,
) -> BulkUpdateResult:
    """Apply one patch to many reports in a single UPDATE."""
    values = patch.model_dump(mode="json", exclude_unset=True, exclude_none=True)
    if not values:
        raise ValidationError("updateData must set at least one field", field="updateData")

    in_ids = Report.id.in_(report_ids)
    matched = (await db.execute(select(func.count(Report.id)).where(in_ids))).scalar() or 0

    if values.get("status") == ReportStatus.resolved.value:
        missing = (
            await db.execute(
                select(func.count(Report.id)).where(in_ids, Report.after_image_url.is_(None))
            )
        ).scalar() or 0
        if missing:
            raise ValidationError(
                f"{missing} report(s) have no after image and cannot be resolved",
                field="updateData.status",
            )

    # Only rows where some value actually changes count as modified
    changed = or_(*(getattr(Report, field).is_distinct_from(value) for field, value in values.items()))
    result = await db.execute(
        update(Report)
        .where(in_ids, changed)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    await db.commit()

    logger.info(
        f"Bulk update of {len(report_ids)} report(s): matched={matched}, modified={result.rowcount}"
    )
    return BulkUpdateResult(matched_count=matched, modified_count=result.rowcount)
