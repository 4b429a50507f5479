"""PostgreSQL-backed enum types for all ORM models.

Each StrEnum maps 1:1 to a PostgreSQL CREATE TYPE ... AS ENUM.  Values are
the upper-case tokens the ESP32 firmware and the dashboard already speak, so
they double as the wire format.
"""

from enum import StrEnum

# ── Sensor enums ────────────────────────────────────────────────────────────


class SensorTypeEnum(StrEnum):
    """Physical sensor producing a reading."""

    dht11 = "DHT11"
    ldr = "LDR"
    soil_moisture = "SOIL_MOISTURE"
    ultrasonic = "ULTRASONIC"


# ── Device enums ────────────────────────────────────────────────────────────


class DeviceTypeEnum(StrEnum):
    """Actuator kinds installed in a greenhouse."""

    fan = "FAN"
    water_pump = "WATER_PUMP"
    water_valve = "WATER_VALVE"
    heater = "HEATER"
    led_light = "LED_LIGHT"
    cooling_system = "COOLING_SYSTEM"
    servo = "SERVO"
    window = "WINDOW"


class DeviceStatusEnum(StrEnum):
    on = "ON"
    off = "OFF"
    auto = "AUTO"
    open = "OPEN"
    closed = "CLOSED"


class DeviceActionEnum(StrEnum):
    """Verbs recorded in the control log.

    The last two are report-only: they are relayed and logged but never
    change device state through the command path.
    """

    turn_on = "turn_on"
    turn_off = "turn_off"
    open = "open"
    close = "close"
    toggle = "toggle"
    set_intensity = "set_intensity"
    set_auto_mode = "set_auto_mode"
    manual_override = "manual_override"
    auto_control = "auto_control"


CONTROL_ACTIONS = frozenset(
    {
        DeviceActionEnum.turn_on,
        DeviceActionEnum.turn_off,
        DeviceActionEnum.open,
        DeviceActionEnum.close,
        DeviceActionEnum.toggle,
        DeviceActionEnum.set_intensity,
        DeviceActionEnum.set_auto_mode,
    }
)


class ControlSourceEnum(StrEnum):
    manual = "manual"
    automation = "automation"
    iot_device = "iot_device"
    schedule = "schedule"


# ── Alert enums ─────────────────────────────────────────────────────────────


class AlertTypeEnum(StrEnum):
    temperature_high = "TEMPERATURE_HIGH"
    temperature_low = "TEMPERATURE_LOW"
    humidity_high = "HUMIDITY_HIGH"
    humidity_low = "HUMIDITY_LOW"
    soil_moisture_low = "SOIL_MOISTURE_LOW"
    light_level_low = "LIGHT_LEVEL_LOW"
    water_level_low = "WATER_LEVEL_LOW"
    device_malfunction = "DEVICE_MALFUNCTION"
    power_consumption_high = "POWER_CONSUMPTION_HIGH"
    sensor_offline = "SENSOR_OFFLINE"


class AlertSeverityEnum(StrEnum):
    low = "LOW"
    medium = "MEDIUM"
    high = "HIGH"
    critical = "CRITICAL"


class AlertSourceEnum(StrEnum):
    """Origin recorded on an alert: a sensor kind or an actuator."""

    dht11 = "DHT11"
    ldr = "LDR"
    soil_moisture = "SOIL_MOISTURE"
    ultrasonic = "ULTRASONIC"
    device = "DEVICE"


# ── Auth enums ──────────────────────────────────────────────────────────────


class UserRoleEnum(StrEnum):
    """User authorization roles for RBAC."""

    admin = "admin"
    operator = "operator"
    viewer = "viewer"


# Roles allowed to mutate devices and alerts.
CONTROL_ROLES = frozenset({UserRoleEnum.admin, UserRoleEnum.operator})
