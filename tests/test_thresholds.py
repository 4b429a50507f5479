from __future__ import annotations

from types import SimpleNamespace

import pytest

from greenlink.models.enums import AlertSeverityEnum, AlertSourceEnum, AlertTypeEnum, SensorTypeEnum
from greenlink.schemas.settings import AlertThresholds
from greenlink.services.thresholds import evaluate, evaluate_device_fault


def _reading(sensor_type: SensorTypeEnum = SensorTypeEnum.dht11, **fields: float | None) -> SimpleNamespace:
    base = {
        "greenhouse_id": "greenhouse-001",
        "device_id": "ESP32_001",
        "sensor_type": sensor_type,
        "temperature": None,
        "humidity": None,
        "soil_moisture": None,
        "light_intensity": None,
    }
    base.update(fields)
    return SimpleNamespace(**base)


def _thresholds(**raw: object) -> AlertThresholds:
    return AlertThresholds.model_validate(raw)


def test_temperature_above_high_bound_creates_single_high_severity_intent() -> None:
    intents = evaluate(
        _reading(temperature=42, humidity=55),
        _thresholds(temperature={"high": 35}),
    )

    assert len(intents) == 1
    intent = intents[0]
    assert intent.alert_type == AlertTypeEnum.temperature_high
    assert intent.severity == AlertSeverityEnum.high
    assert intent.current_value == 42
    assert intent.threshold_value == 35
    assert intent.sensor_type == AlertSourceEnum.dht11
    assert intent.device_id == "ESP32_001"
    assert "above" in intent.message


@pytest.mark.parametrize("value", [-40.0, 0.0, 55.5, 80.0, 1e6])
def test_unset_bounds_never_fire(value: float) -> None:
    reading = _reading(temperature=value, humidity=value)
    assert evaluate(reading, AlertThresholds()) == []


def test_value_equal_to_bound_does_not_fire() -> None:
    thresholds = _thresholds(temperature={"high": 35, "low": 10}, humidity={"high": 80, "low": 30})
    assert evaluate(_reading(temperature=35, humidity=30), thresholds) == []


def test_dht11_reading_can_violate_temperature_and_humidity_independently() -> None:
    thresholds = _thresholds(temperature={"low": 15}, humidity={"high": 70})

    intents = evaluate(_reading(temperature=12.5, humidity=91), thresholds)

    assert [intent.alert_type for intent in intents] == [
        AlertTypeEnum.temperature_low,
        AlertTypeEnum.humidity_high,
    ]
    assert [intent.severity for intent in intents] == [AlertSeverityEnum.high, AlertSeverityEnum.medium]


def test_soil_and_light_only_have_low_bounds() -> None:
    thresholds = _thresholds(soilMoisture={"low": 300}, lightLevel={"low": 200})

    soil = evaluate(_reading(SensorTypeEnum.soil_moisture, soil_moisture=120), thresholds)
    light = evaluate(_reading(SensorTypeEnum.ldr, light_intensity=50), thresholds)
    bright = evaluate(_reading(SensorTypeEnum.ldr, light_intensity=9000), thresholds)

    assert [(i.alert_type, i.severity, i.sensor_type) for i in soil] == [
        (AlertTypeEnum.soil_moisture_low, AlertSeverityEnum.high, AlertSourceEnum.soil_moisture)
    ]
    assert [(i.alert_type, i.severity) for i in light] == [
        (AlertTypeEnum.light_level_low, AlertSeverityEnum.medium)
    ]
    assert bright == []


def test_fields_absent_from_the_reading_are_skipped() -> None:
    thresholds = _thresholds(temperature={"high": 30}, humidity={"low": 40})
    intents = evaluate(_reading(humidity=20), thresholds)
    assert [intent.alert_type for intent in intents] == [AlertTypeEnum.humidity_low]


def test_repeated_violations_are_not_deduplicated() -> None:
    thresholds = _thresholds(temperature={"high": 30})
    first = evaluate(_reading(temperature=31), thresholds)
    second = evaluate(_reading(temperature=31), thresholds)
    assert len(first) == len(second) == 1


def test_device_fault_maps_to_critical_malfunction() -> None:
    device = SimpleNamespace(greenhouse_id="greenhouse-001", device_id="FAN_001", device_name="Ventilation Fan")

    intents = evaluate_device_fault(device, "motor stalled")

    assert len(intents) == 1
    assert intents[0].alert_type == AlertTypeEnum.device_malfunction
    assert intents[0].severity == AlertSeverityEnum.critical
    assert intents[0].sensor_type == AlertSourceEnum.device
    assert "motor stalled" in intents[0].message
    assert evaluate_device_fault(device, None) == []
    assert evaluate_device_fault(device, "   ") == []
