"""ORM model registry; importing this module registers every table on Base.metadata.

Alembic ``env.py`` imports ``Base`` from here (not from ``base.py``) so that
autogenerate sees all tables.  Application code can also do::

    from greenlink.models import Alert, Device, Reading, ...
"""

# ── Base & Mixins ───────────────────────────────────────────────────────────
from greenlink.models.alerts import Alert, AlertSettings
from greenlink.models.base import (
    AppendOnlyMixin,
    Base,
    TimestampMixin,
    UUIDPrimaryKeyMixin,
)
from greenlink.models.devices import Device, DeviceControlLog

# ── Enums ───────────────────────────────────────────────────────────────────
from greenlink.models.enums import (
    AlertSeverityEnum,
    AlertSourceEnum,
    AlertTypeEnum,
    ControlSourceEnum,
    DeviceActionEnum,
    DeviceStatusEnum,
    DeviceTypeEnum,
    SensorTypeEnum,
    UserRoleEnum,
)
from greenlink.models.readings import Reading

__all__ = [
    "Alert",
    "AlertSettings",
    "AlertSeverityEnum",
    "AlertSourceEnum",
    "AlertTypeEnum",
    "AppendOnlyMixin",
    "Base",
    "ControlSourceEnum",
    "Device",
    "DeviceActionEnum",
    "DeviceControlLog",
    "DeviceStatusEnum",
    "DeviceTypeEnum",
    "Reading",
    "SensorTypeEnum",
    "TimestampMixin",
    "UUIDPrimaryKeyMixin",
    "UserRoleEnum",
]
