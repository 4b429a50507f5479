"""Alert and per-user threshold settings ORM models."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Enum,
    Float,
    Index,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from greenlink.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin
from greenlink.models.enums import AlertSeverityEnum, AlertSourceEnum, AlertTypeEnum


def _values(members: Any) -> list[str]:
    return [member.value for member in members]


class Alert(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """A recorded threshold violation or malfunction.

    ``is_resolved`` flips false → true exactly once.  The check constraint
    keeps ``resolved_at`` in lock-step with it.
    """

    __tablename__ = "alerts"
    __table_args__ = (
        Index("ix_alerts_greenhouse_created", "greenhouse_id", "created_at"),
        Index("ix_alerts_resolved_severity", "is_resolved", "severity"),
        CheckConstraint(
            "(is_resolved AND resolved_at IS NOT NULL) "
            "OR (NOT is_resolved AND resolved_at IS NULL)",
            name="ck_alerts_resolved_at_consistent",
        ),
    )

    greenhouse_id: Mapped[str] = mapped_column(String(64), nullable=False)
    alert_type: Mapped[AlertTypeEnum] = mapped_column(
        Enum(AlertTypeEnum, name="alert_type", values_callable=_values),
        nullable=False,
    )
    severity: Mapped[AlertSeverityEnum] = mapped_column(
        Enum(AlertSeverityEnum, name="alert_severity", values_callable=_values),
        nullable=False,
        default=AlertSeverityEnum.medium,
    )
    message: Mapped[str] = mapped_column(Text, nullable=False)
    current_value: Mapped[float] = mapped_column(Float, nullable=False)
    threshold_value: Mapped[float] = mapped_column(Float, nullable=False)
    sensor_type: Mapped[AlertSourceEnum] = mapped_column(
        Enum(AlertSourceEnum, name="alert_source", values_callable=_values),
        nullable=False,
    )
    device_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    is_resolved: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=text("false")
    )
    resolved_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    resolved_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    action_taken: Mapped[str | None] = mapped_column(Text, nullable=True)
    auto_resolved: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=text("false")
    )

    def __repr__(self) -> str:
        return (
            f"<Alert id={self.id} type={self.alert_type} "
            f"resolved={self.is_resolved}>"
        )


class AlertSettings(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """Alert thresholds one user configured for one greenhouse.

    ``thresholds`` mirrors :class:`greenlink.schemas.settings.AlertThresholds`;
    a ``null`` bound disables alerting on that dimension.
    """

    __tablename__ = "alert_settings"
    __table_args__ = (
        UniqueConstraint("user_id", "greenhouse_id", name="uq_alert_settings_user_greenhouse"),
    )

    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    greenhouse_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    thresholds: Mapped[dict[str, Any]] = mapped_column(JSONB, nullable=False)

    def __repr__(self) -> str:
        return (
            f"<AlertSettings user={self.user_id!r} "
            f"greenhouse={self.greenhouse_id!r}>"
        )
