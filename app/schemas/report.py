from datetime import datetime
from enum import Enum
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, Field


class ReportCategory(str, Enum):
    roads_potholes = "Roads & Potholes"
    water_utilities = "Water & Utilities"
    sanitation_waste = "Sanitation & Waste"
    streetlights_power = "Streetlights & Power"
    spitting_stains = "Pan Masala Spitting & Stains"
    littering_dumping = "Littering & Garbage Dumping"
    illegal_parking = "Illegal Parking"
    noise_pollution = "Noise Pollution"
    parks_public_spaces = "Parks & Public Spaces"
    public_safety = "Public Safety"
    drainage_sewerage = "Drainage & Sewerage"
    illegal_construction = "Illegal Construction"
    footpath_encroachment = "Encroachment on Footpaths"
    other = "Other"


class ReportStatus(str, Enum):
    pending = "pending"
    in_progress = "in-progress"
    resolved = "resolved"


class ReportPriority(str, Enum):
    low = "low"
    medium = "medium"
    high = "high"


class ImageType(str, Enum):
    before = "before"
    after = "after"


# User-facing schemas
class ReportCreate(BaseModel):
    category: ReportCategory
    title: str | None = Field(None, max_length=200)
    description: str = Field(..., min_length=1, max_length=500)
    address: str = Field(..., min_length=1, max_length=500)
    latitude: float | None = Field(None, ge=-90, le=90)
    longitude: float | None = Field(None, ge=-180, le=180)
    severity: int | None = Field(None, ge=1, le=5)

    model_config = {"str_strip_whitespace": True}


class ReportOwner(BaseModel):
    id: UUID
    email: str
    phone: str | None = None

    model_config = {"from_attributes": True}


class ReportOwnerEmail(BaseModel):
    id: UUID
    email: str

    model_config = {"from_attributes": True}


class GeoPoint(BaseModel):
    type: Literal["Point"] = "Point"
    coordinates: list[float]


class ReportResponse(BaseModel):
    id: UUID
    owner_id: UUID
    owner: ReportOwner | None = None
    category: str
    title: str | None
    description: str
    image_url: str | None
    after_image_url: str | None
    location: GeoPoint | None
    address: str
    status: str
    priority: str
    assigned_department: str
    severity: int | None
    upvotes: list[UUID]
    created_at: datetime

    model_config = {"from_attributes": True}


class NearbyReportResponse(ReportResponse):
    owner: ReportOwnerEmail | None = None


# Admin schemas
class ReportUpdate(BaseModel):
    """Admin patch. Every field that is set overwrites the stored one."""

    category: ReportCategory | None = None
    title: str | None = Field(None, max_length=200)
    description: str | None = Field(None, min_length=1, max_length=500)
    address: str | None = Field(None, min_length=1, max_length=500)
    status: ReportStatus | None = None
    priority: ReportPriority | None = None
    assigned_department: str | None = Field(None, min_length=1, max_length=200)
    severity: int | None = Field(None, ge=1, le=5)

    model_config = {"str_strip_whitespace": True}


class DepartmentAssign(BaseModel):
    department: str = Field(..., min_length=1, max_length=200)


class ImageDelete(BaseModel):
    image_type: ImageType | None = Field(None, alias="imageType")

    model_config = {"populate_by_name": True}


class BulkUpdateRequest(BaseModel):
    report_ids: list[UUID] = Field(..., min_length=1, alias="reportIds")
    update_data: ReportUpdate = Field(..., alias="updateData")

    model_config = {"populate_by_name": True}


class BulkUpdateResult(BaseModel):
    matched_count: int = Field(..., alias="matchedCount")
    modified_count: int = Field(..., alias="modifiedCount")

    model_config = {"populate_by_name": True}


class ReportStats(BaseModel):
    total: int
    pending: int
    in_progress: int = Field(..., alias="inProgress")
    resolved: int

    model_config = {"populate_by_name": True}
