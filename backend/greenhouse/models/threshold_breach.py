"""SQLAlchemy model for the threshold_breaches table."""

import uuid
from datetime import datetime, timezone
from sqlalchemy import Boolean, String, DateTime, Float, Index, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column
from greenhouse.models.plant import Base


class ThresholdBreach(Base):
    __tablename__ = "threshold_breaches"
    __table_args__ = (
        # At most one active breach per (device, sensor, breach type)
        Index(
            "uq_threshold_breaches_active",
            "device_id", "sensor_type", "breach_type",
            unique=True,
            postgresql_where=text("is_active"),
        ),
        Index("ix_threshold_breaches_device_sensor", "device_id", "sensor_type", "created_at"),
        Index("ix_threshold_breaches_plant", "plant_id", "created_at"),
        Index("ix_threshold_breaches_active", "is_active", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True, default=uuid.uuid4
    )
    sensor_id: Mapped[str] = mapped_column(String(200), nullable=False)
    device_id: Mapped[str] = mapped_column(String(100), nullable=False)
    plant_id: Mapped[str] = mapped_column(String(100), nullable=False)
    sensor_type: Mapped[str] = mapped_column(String(50), nullable=False)
    current_value: Mapped[float] = mapped_column(Float, nullable=False)
    thresholds: Mapped[dict] = mapped_column(JSONB, nullable=False)
    breach_type: Mapped[str] = mapped_column(String(50), nullable=False)
    severity: Mapped[str] = mapped_column(String(20), nullable=False)
    message: Mapped[str] = mapped_column(String(500), nullable=False)
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
    resolved_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    def __repr__(self) -> str:
        return f"<ThresholdBreach {self.sensor_id} {self.breach_type} active={self.is_active}>"
