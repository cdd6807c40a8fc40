"""SQLAlchemy models for the plants and plant_types tables."""

import uuid
from datetime import datetime, timezone
from sqlalchemy import Boolean, String, DateTime, ForeignKey, Index
from sqlalchemy.dialects.postgresql import ARRAY, JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class PlantType(Base):
    """Template with default thresholds per sensor type."""

    __tablename__ = "plant_types"

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True, default=uuid.uuid4
    )
    type: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    # {"temperature": {"min": .., "max": .., "ideal_min": .., "ideal_max": ..}, ...}
    default_thresholds: Mapped[dict] = mapped_column(
        JSONB, nullable=False, default=dict
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    def __repr__(self) -> str:
        return f"<PlantType {self.type}>"


class Plant(Base):
    __tablename__ = "plants"
    __table_args__ = (
        Index("ix_plants_assigned_devices", "assigned_devices", postgresql_using="gin"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True, default=uuid.uuid4
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    plant_type: Mapped[str | None] = mapped_column(
        ForeignKey("plant_types.type", ondelete="SET NULL"), nullable=True
    )
    assigned_devices: Mapped[list[str]] = mapped_column(
        ARRAY(String(100)), nullable=False, default=list
    )
    # Per-plant overrides; missing sensor types fall back to the plant type
    thresholds: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
    status: Mapped[str] = mapped_column(
        String(50), nullable=False, default="active"
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    def __repr__(self) -> str:
        return f"<Plant {self.name} devices={self.assigned_devices}>"
