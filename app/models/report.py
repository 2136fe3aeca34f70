import uuid
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from geoalchemy2 import Geography, WKBElement, WKTElement
from sqlalchemy import JSON, DateTime, Float, ForeignKey, Index, Integer, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base

if TYPE_CHECKING:
    from app.models.user import User


class Report(Base):
    __tablename__ = "reports"
    __table_args__ = (
        Index("ix_reports_point", "point", postgresql_using="gist"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )

    # Set once at creation, no update path writes it
    owner_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # One of ReportCategory values
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    title: Mapped[str | None] = mapped_column(String(200), nullable=True)
    description: Mapped[str] = mapped_column(Text, nullable=False)

    # Hosted image URLs (before / after resolution)
    image_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    after_image_url: Mapped[str | None] = mapped_column(String(500), nullable=True)

    # GPS point, both or neither. `point` is the spherical copy used for
    # proximity queries; it is only written through set_location().
    longitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    point: Mapped[WKBElement | None] = mapped_column(
        Geography(geometry_type="POINT", srid=4326, spatial_index=False),
        nullable=True,
    )
    address: Mapped[str] = mapped_column(String(500), nullable=False)

    # Status: pending, in-progress, resolved
    status: Mapped[str] = mapped_column(
        String(20), default="pending", nullable=False, index=True
    )
    # Priority: low, medium, high
    priority: Mapped[str] = mapped_column(String(10), default="medium", nullable=False)
    assigned_department: Mapped[str] = mapped_column(
        String(200), default="Unassigned", nullable=False
    )
    severity: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # User ids (as strings) that upvoted this report
    upvotes: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        server_default=func.now(),
        index=True,
    )

    # Relationships
    owner: Mapped["User"] = relationship("User", back_populates="reports")

    def set_location(self, longitude: float, latitude: float) -> None:
        self.longitude = longitude
        self.latitude = latitude
        self.point = WKTElement(f"POINT({longitude} {latitude})", srid=4326)

    @property
    def location(self) -> dict[str, Any] | None:
        """GeoJSON point, coordinates are [longitude, latitude]."""
        if self.longitude is None or self.latitude is None:
            return None
        return {"type": "Point", "coordinates": [self.longitude, self.latitude]}
