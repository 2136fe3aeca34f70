import logging
from typing import Annotated, Any
from uuid import UUID

from fastapi import APIRouter, Body, Depends, File, Form, Request, UploadFile, status
from pydantic import ValidationError as SchemaError
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.datastructures import UploadFile as StarletteUploadFile

from app.api.v1.endpoints.auth import describe_schema_error, get_current_user
from app.core.exceptions import ValidationError
from app.database import get_db
from app.models.user import User, UserRole
from app.schemas.common import ApiResponse
from app.schemas.report import (
    BulkUpdateRequest,
    BulkUpdateResult,
    DepartmentAssign,
    ImageDelete,
    NearbyReportResponse,
    ReportCreate,
    ReportResponse,
    ReportStats,
    ReportUpdate,
)
from app.services import report_service, user_service
from app.services.asset_gateway import AssetGateway, get_asset_gateway, read_image_upload

logger = logging.getLogger(__name__)

router = APIRouter(prefix="", tags=["reports"])


async def get_current_admin_user(
    current_user: Annotated[User, Depends(get_current_user)],
) -> User:
    """Dependency that checks if current user is admin."""
    user_service.authorize(current_user, UserRole.ADMIN)
    return current_user


async def read_optional_image(file: UploadFile | None) -> bytes | None:
    if file is None or not file.filename:
        return None
    return await read_image_upload(file)


async def parse_report_patch(request: Request) -> tuple[ReportUpdate, StarletteUploadFile | None]:
    """
    Read an admin patch from either a JSON body or a multipart form.
    A multipart form may carry the resolution photo as `afterImage`.
    """
    after_image = None
    content_type = request.headers.get("content-type", "")

    if content_type.startswith(("multipart/form-data", "application/x-www-form-urlencoded")):
        form = await request.form()
        raw: Any = {}
        for key, value in form.multi_items():
            if isinstance(value, StarletteUploadFile):
                if key == "afterImage" and value.filename:
                    after_image = value
                continue
            if value != "":
                raw[key] = value
    else:
        body = await request.body()
        try:
            raw = await request.json() if body else {}
        except ValueError:
            raise ValidationError("Request body must be valid JSON")

    if not isinstance(raw, dict):
        raise ValidationError("Request body must be an object")

    try:
        patch = ReportUpdate.model_validate(raw)
    except SchemaError as e:
        raise ValidationError(describe_schema_error(e))
    return patch, after_image


def report_list(reports) -> ApiResponse[list[ReportResponse]]:
    return ApiResponse(
        count=len(reports),
        data=[ReportResponse.model_validate(r) for r in reports],
    )


@router.get("", response_model=ApiResponse[list[ReportResponse]])
async def list_reports(
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> ApiResponse[list[ReportResponse]]:
    """All reports, newest first, with owner email and phone."""
    return report_list(await report_service.list_reports(db))


@router.post(
    "",
    response_model=ApiResponse[ReportResponse],
    status_code=status.HTTP_201_CREATED,
)
async def create_report(
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    assets: Annotated[AssetGateway, Depends(get_asset_gateway)],
    category: Annotated[str | None, Form()] = None,
    description: Annotated[str | None, Form()] = None,
    address: Annotated[str | None, Form()] = None,
    title: Annotated[str | None, Form()] = None,
    latitude: Annotated[str | None, Form()] = None,
    longitude: Annotated[str | None, Form()] = None,
    severity: Annotated[str | None, Form()] = None,
    photo: Annotated[UploadFile | None, File()] = None,
) -> ApiResponse[ReportResponse]:
    """
    Submit a new issue report (multipart form).

    The optional `photo` is downscaled to fit 1200x1200 and compressed by the
    image host before the report is saved.
    """
    fields = {
        "category": category,
        "description": description,
        "address": address,
        "title": title,
        "latitude": latitude,
        "longitude": longitude,
        "severity": severity,
    }
    try:
        data = ReportCreate.model_validate(
            {key: value for key, value in fields.items() if value not in (None, "")}
        )
    except SchemaError as e:
        raise ValidationError(describe_schema_error(e))

    content = await read_optional_image(photo)
    report = await report_service.create_report(db, current_user.id, data, assets, content)

    return ApiResponse(
        message="Report submitted successfully",
        data=ReportResponse.model_validate(report),
    )


@router.get("/my-reports", response_model=ApiResponse[list[ReportResponse]])
async def list_my_reports(
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> ApiResponse[list[ReportResponse]]:
    return report_list(await report_service.list_reports(db, owner_id=current_user.id))


@router.get("/stats", response_model=ApiResponse[ReportStats])
async def get_report_stats(
    admin_user: Annotated[User, Depends(get_current_admin_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> ApiResponse[ReportStats]:
    """Report counts by status (admin only)."""
    return ApiResponse(data=await report_service.get_stats(db))


@router.get(
    "/nearby/{latitude}/{longitude}/{radius}",
    response_model=ApiResponse[list[NearbyReportResponse]],
)
async def list_nearby_reports(
    latitude: float,
    longitude: float,
    radius: float,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> ApiResponse[list[NearbyReportResponse]]:
    """Unresolved reports within `radius` km, nearest first."""
    reports = await report_service.find_nearby(db, longitude, latitude, radius)
    return ApiResponse(
        count=len(reports),
        data=[NearbyReportResponse.model_validate(r) for r in reports],
    )


@router.put("/bulk-update", response_model=ApiResponse[BulkUpdateResult])
async def bulk_update_reports(
    payload: BulkUpdateRequest,
    admin_user: Annotated[User, Depends(get_current_admin_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> ApiResponse[BulkUpdateResult]:
    """Apply the same patch to several reports (admin only)."""
    result = await report_service.bulk_update(db, payload.report_ids, payload.update_data)
    return ApiResponse(
        message=f"Updated {result.modified_count} reports",
        data=result,
    )


@router.put("/{report_id}/upvote", response_model=ApiResponse[ReportResponse])
async def upvote_report(
    report_id: UUID,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> ApiResponse[ReportResponse]:
    """Toggle the caller's upvote."""
    report = await report_service.toggle_upvote(db, report_id, current_user.id)
    return ApiResponse(data=ReportResponse.model_validate(report))


@router.put("/{report_id}/assign", response_model=ApiResponse[ReportResponse])
async def assign_report(
    report_id: UUID,
    payload: DepartmentAssign,
    admin_user: Annotated[User, Depends(get_current_admin_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> ApiResponse[ReportResponse]:
    report = await report_service.assign_department(db, report_id, payload.department)
    return ApiResponse(data=ReportResponse.model_validate(report))


@router.put("/{report_id}/image", response_model=ApiResponse[ReportResponse])
async def replace_report_image(
    report_id: UUID,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    assets: Annotated[AssetGateway, Depends(get_asset_gateway)],
    photo: Annotated[UploadFile | None, File()] = None,
) -> ApiResponse[ReportResponse]:
    """Owner replaces the report photo while it is still pending."""
    content = await read_optional_image(photo)
    report = await report_service.replace_owner_image(
        db, report_id, current_user, content, assets
    )
    return ApiResponse(
        message="Image updated successfully",
        data=ReportResponse.model_validate(report),
    )


@router.delete("/{report_id}/image", response_model=ApiResponse[ReportResponse])
async def delete_report_image(
    report_id: UUID,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    assets: Annotated[AssetGateway, Depends(get_asset_gateway)],
    payload: Annotated[ImageDelete | None, Body()] = None,
) -> ApiResponse[ReportResponse]:
    """
    Remove a report image.

    Admins send `{"imageType": "before" | "after"}`; owners always remove the
    before image and only while the report is pending.
    """
    image_type = payload.image_type if payload else None
    report = await report_service.delete_image(
        db, report_id, current_user, assets, image_type
    )
    return ApiResponse(
        message="Image deleted successfully",
        data=ReportResponse.model_validate(report),
    )


@router.get("/{report_id}", response_model=ApiResponse[ReportResponse])
async def get_report(
    report_id: UUID,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> ApiResponse[ReportResponse]:
    report = await report_service.get_report_or_404(db, report_id)
    return ApiResponse(data=ReportResponse.model_validate(report))


@router.put("/{report_id}", response_model=ApiResponse[ReportResponse])
async def update_report_status(
    report_id: UUID,
    admin_user: Annotated[User, Depends(get_current_admin_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    assets: Annotated[AssetGateway, Depends(get_asset_gateway)],
    parsed: Annotated[tuple[ReportUpdate, StarletteUploadFile | None], Depends(parse_report_patch)],
) -> ApiResponse[ReportResponse]:
    """
    Update a report (admin only). Accepts JSON or a multipart form; the form
    may include an `afterImage` file. Resolving requires an after image.
    """
    patch, after_image_file = parsed
    after_image = await read_image_upload(after_image_file) if after_image_file else None

    report = await report_service.update_report_status(
        db, report_id, patch, assets, after_image
    )
    return ApiResponse(data=ReportResponse.model_validate(report))


@router.delete("/{report_id}", response_model=ApiResponse[dict])
async def delete_report(
    report_id: UUID,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    assets: Annotated[AssetGateway, Depends(get_asset_gateway)],
) -> ApiResponse[dict]:
    """Delete a report (owner or admin)."""
    await report_service.delete_report(db, report_id, current_user, assets)
    return ApiResponse(message="Report deleted successfully", data={})
