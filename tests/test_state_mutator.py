from __future__ import annotations

from datetime import UTC, datetime

import pytest

from greenlink.errors import (
    AlreadyResolvedError,
    BadRequestError,
    InvalidActionError,
    NotFoundError,
    ValidationError,
)
from greenlink.models.devices import Device
from greenlink.models.enums import (
    AlertSeverityEnum,
    AlertSourceEnum,
    AlertTypeEnum,
    ControlSourceEnum,
    DeviceActionEnum,
    DeviceStatusEnum,
    DeviceTypeEnum,
    SensorTypeEnum,
)
from greenlink.schemas.ingest import ClimateSample, LightSample, SoilMoistureSample, WaterLevelSample
from greenlink.services.state_mutator import Actor, StateMutator
from greenlink.services.thresholds import AlertIntent

from conftest import GREENHOUSE_ID, InMemoryStore, make_device

ACTOR = Actor(user_id="user-1", username="admin")


@pytest.fixture
def mutator(store: InMemoryStore) -> StateMutator:
    return StateMutator(store)


# ── Readings ────────────────────────────────────────────────────────────────


async def test_apply_reading_stamps_server_time_and_location(mutator: StateMutator, store: InMemoryStore) -> None:
    before = datetime.now(UTC)
    reading = await mutator.apply_reading(GREENHOUSE_ID, "ESP32_001", ClimateSample(temperature=24.5, humidity=61))

    assert reading.id is not None
    assert reading.sensor_type == SensorTypeEnum.dht11
    assert reading.temperature == 24.5
    assert reading.humidity == 61
    assert reading.location == "Main Greenhouse"
    assert reading.timestamp >= before
    assert store.readings == [reading]


async def test_water_level_goes_to_custom_value_at_the_tank(mutator: StateMutator) -> None:
    reading = await mutator.apply_reading(GREENHOUSE_ID, "ESP32_001", WaterLevelSample(water_level=17))
    assert reading.custom_value == 17.0
    assert reading.location == "Water Tank"


async def test_raw_counts_are_stored_as_whole_units(mutator: StateMutator) -> None:
    light = await mutator.apply_reading(GREENHOUSE_ID, "ESP32_001", LightSample(light_intensity=455.9))
    soil = await mutator.apply_reading(GREENHOUSE_ID, "ESP32_001", SoilMoistureSample(soil_moisture=4095.0))

    assert light.light_intensity == 455
    assert soil.soil_moisture == 4095


@pytest.mark.parametrize(
    ("sample", "field"),
    [
        (ClimateSample(temperature=120), "temperature"),
        (ClimateSample(temperature=-41), "temperature"),
        (ClimateSample(temperature=20, humidity=101), "humidity"),
        (SoilMoistureSample(soil_moisture=5000), "soil_moisture"),
        (LightSample(light_intensity=10001), "light_intensity"),
        (LightSample(light_intensity=10000.9), "light_intensity"),
        (SoilMoistureSample(soil_moisture=-0.9), "soil_moisture"),
    ],
)
async def test_out_of_range_values_are_rejected_not_clamped(
    mutator: StateMutator,
    store: InMemoryStore,
    sample: object,
    field: str,
) -> None:
    with pytest.raises(ValidationError) as excinfo:
        await mutator.apply_reading(GREENHOUSE_ID, "ESP32_001", sample)  # type: ignore[arg-type]
    assert excinfo.value.field == field
    assert store.readings == []


# ── Device commands ─────────────────────────────────────────────────────────


async def test_turn_on_logs_previous_status_and_activates(
    mutator: StateMutator,
    store: InMemoryStore,
    pump: Device,
) -> None:
    before = datetime.now(UTC)
    outcome = await mutator.apply_device_command("WATER_PUMP_001", "turn_on", actor=ACTOR)

    assert outcome.previous_status == DeviceStatusEnum.off
    assert outcome.new_status == DeviceStatusEnum.on
    assert pump.status == DeviceStatusEnum.on
    assert pump.last_activated is not None and pump.last_activated >= before
    assert len(store.control_logs) == 1
    entry = store.control_logs[0]
    assert (entry.previous_status, entry.new_status) == (DeviceStatusEnum.off, DeviceStatusEnum.on)
    assert entry.action == DeviceActionEnum.turn_on
    assert entry.control_source == ControlSourceEnum.manual
    assert (entry.user_id, entry.username) == ("user-1", "admin")


@pytest.mark.parametrize(
    ("device_type", "start", "expected"),
    [
        (DeviceTypeEnum.window, DeviceStatusEnum.closed, DeviceStatusEnum.open),
        (DeviceTypeEnum.servo, DeviceStatusEnum.open, DeviceStatusEnum.closed),
        (DeviceTypeEnum.fan, DeviceStatusEnum.off, DeviceStatusEnum.on),
        (DeviceTypeEnum.led_light, DeviceStatusEnum.on, DeviceStatusEnum.off),
    ],
)
async def test_toggle_depends_on_device_kind(
    mutator: StateMutator,
    store: InMemoryStore,
    device_type: DeviceTypeEnum,
    start: DeviceStatusEnum,
    expected: DeviceStatusEnum,
) -> None:
    store.put_device(make_device("DEV_001", device_type, start))
    outcome = await mutator.apply_device_command("DEV_001", "toggle")
    assert outcome.previous_status == start
    assert outcome.new_status == expected


async def test_set_intensity_twice_keeps_status_and_logs_twice(
    mutator: StateMutator,
    store: InMemoryStore,
) -> None:
    light = store.put_device(make_device("LED_LIGHT_001", DeviceTypeEnum.led_light, DeviceStatusEnum.on))

    await mutator.apply_device_command("LED_LIGHT_001", "set_intensity", 70)
    await mutator.apply_device_command("LED_LIGHT_001", "set_intensity", 70)

    assert light.status == DeviceStatusEnum.on
    assert light.intensity == 70
    assert light.last_activated is None
    assert len(store.control_logs) == 2
    assert all(e.previous_status == e.new_status == DeviceStatusEnum.on for e in store.control_logs)


@pytest.mark.parametrize(("value", "expected"), [(150, 100), (-5, 0), ("42", 42), (33.6, 34)])
async def test_set_intensity_clamps(mutator: StateMutator, pump: Device, value: object, expected: int) -> None:
    outcome = await mutator.apply_device_command("WATER_PUMP_001", "set_intensity", value)
    assert outcome.device.intensity == expected


@pytest.mark.parametrize("value", [None, "bright", True])
async def test_set_intensity_requires_a_number(
    mutator: StateMutator,
    store: InMemoryStore,
    pump: Device,
    value: object,
) -> None:
    with pytest.raises(BadRequestError):
        await mutator.apply_device_command("WATER_PUMP_001", "set_intensity", value)
    assert store.control_logs == []


async def test_set_auto_mode_sets_or_flips(mutator: StateMutator, pump: Device) -> None:
    await mutator.apply_device_command("WATER_PUMP_001", "set_auto_mode", True)
    assert pump.auto_mode is True
    await mutator.apply_device_command("WATER_PUMP_001", "set_auto_mode")
    assert pump.auto_mode is False
    assert pump.status == DeviceStatusEnum.off


@pytest.mark.parametrize("action", ["fly", "manual_override", "auto_control", ""])
async def test_unknown_or_report_only_action_is_rejected(
    mutator: StateMutator,
    store: InMemoryStore,
    pump: Device,
    action: str,
) -> None:
    with pytest.raises(InvalidActionError):
        await mutator.apply_device_command("WATER_PUMP_001", action)
    assert pump.status == DeviceStatusEnum.off
    assert store.control_logs == []


async def test_command_for_unknown_device(mutator: StateMutator, store: InMemoryStore) -> None:
    with pytest.raises(NotFoundError):
        await mutator.apply_device_command("NOPE_001", "turn_on")
    assert store.control_logs == []


# ── Device status reports ───────────────────────────────────────────────────


async def test_status_report_logs_only_real_transitions(
    mutator: StateMutator,
    store: InMemoryStore,
    pump: Device,
) -> None:
    unchanged = await mutator.apply_device_status_report("WATER_PUMP_001", "OFF", auto_mode=True)
    assert unchanged.log_entry is None
    assert pump.auto_mode is True
    assert pump.last_activated is None

    changed = await mutator.apply_device_status_report("WATER_PUMP_001", "on")
    assert changed.previous_status == DeviceStatusEnum.off
    assert pump.status == DeviceStatusEnum.on
    assert pump.auto_mode is True
    assert pump.last_activated is not None
    assert changed.log_entry is not None
    assert changed.log_entry.action == DeviceActionEnum.auto_control
    assert changed.log_entry.control_source == ControlSourceEnum.iot_device
    assert changed.log_entry.user_id is None
    assert len(store.control_logs) == 1


async def test_status_report_rejects_unknown_status(mutator: StateMutator, pump: Device) -> None:
    with pytest.raises(ValidationError):
        await mutator.apply_device_status_report("WATER_PUMP_001", "SIDEWAYS")


async def test_status_report_for_unregistered_device(mutator: StateMutator) -> None:
    with pytest.raises(NotFoundError):
        await mutator.apply_device_status_report("GHOST_001", "ON")


# ── Alerts ──────────────────────────────────────────────────────────────────


async def _an_alert(mutator: StateMutator) -> object:
    return await mutator.record_alert(
        AlertIntent(
            greenhouse_id=GREENHOUSE_ID,
            alert_type=AlertTypeEnum.temperature_high,
            severity=AlertSeverityEnum.high,
            message="Temperature 42°C is above the high threshold of 35°C",
            current_value=42,
            threshold_value=35,
            sensor_type=AlertSourceEnum.dht11,
            device_id="ESP32_001",
        )
    )


async def test_resolve_alert_sets_all_resolution_fields(mutator: StateMutator) -> None:
    alert = await _an_alert(mutator)

    resolved = await mutator.resolve_alert(alert.id, "admin", "opened vents")  # type: ignore[attr-defined]

    assert resolved.is_resolved is True
    assert resolved.resolved_at is not None
    assert resolved.resolved_by == "admin"
    assert resolved.action_taken == "opened vents"


async def test_resolving_twice_fails_and_keeps_first_resolution(mutator: StateMutator) -> None:
    alert = await _an_alert(mutator)
    first = await mutator.resolve_alert(alert.id, "admin", None)  # type: ignore[attr-defined]
    resolved_at = first.resolved_at

    with pytest.raises(AlreadyResolvedError):
        await mutator.resolve_alert(alert.id, "someone-else", "again")  # type: ignore[attr-defined]

    assert first.resolved_at == resolved_at
    assert first.resolved_by == "admin"


async def test_resolve_missing_alert(mutator: StateMutator) -> None:
    import uuid

    with pytest.raises(NotFoundError):
        await mutator.resolve_alert(uuid.uuid4(), "admin", None)


async def test_default_devices_are_seeded_once(mutator: StateMutator, store: InMemoryStore) -> None:
    created = await mutator.ensure_default_devices(GREENHOUSE_ID)
    again = await mutator.ensure_default_devices(GREENHOUSE_ID)

    assert sorted(device.device_id for device in created) == [
        "FAN_001",
        "LED_LIGHT_001",
        "WATER_PUMP_001",
        "WATER_VALVE_001",
        "WINDOW_SERVO_001",
    ]
    assert again == []
    assert store.devices["WINDOW_SERVO_001"].status == DeviceStatusEnum.closed
    assert store.devices["WATER_PUMP_001"].automation_rules["temperatureHigh"] is None
