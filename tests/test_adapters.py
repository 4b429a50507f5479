from __future__ import annotations

import pytest

from greenlink.errors import BadRequestError
from greenlink.models.enums import SensorTypeEnum
from greenlink.schemas.ingest import ClimateSample, LightSample, SoilMoistureSample, WaterLevelSample
from greenlink.services.adapters import adapt_bulk, adapt_flat, adapt_nested, parse_status_report

DEFAULT_GH = "greenhouse-001"


def test_flat_payload_splits_into_one_sample_per_sensor() -> None:
    event = adapt_flat(
        {
            "deviceId": "ESP32_001",
            "temperature": 24.5,
            "humidity": 60,
            "soilMoisture": 1800.7,
            "lightIntensity": 455.9,
            "waterLevel": 12.4,
        },
        DEFAULT_GH,
    )

    assert event.device_id == "ESP32_001"
    assert event.greenhouse_id == DEFAULT_GH
    assert [sample.sensor_type for sample in event.samples] == [
        SensorTypeEnum.dht11,
        SensorTypeEnum.ldr,
        SensorTypeEnum.soil_moisture,
        SensorTypeEnum.ultrasonic,
    ]
    climate, light, soil, water = event.samples
    assert isinstance(climate, ClimateSample) and climate.humidity == 60
    assert isinstance(light, LightSample) and light.light_intensity == 455.9
    assert isinstance(soil, SoilMoistureSample) and soil.soil_moisture == 1800.7
    assert isinstance(water, WaterLevelSample) and water.water_level == 12.4


def test_explicit_greenhouse_overrides_default() -> None:
    event = adapt_flat({"deviceId": "ESP32_002", "greenhouseId": "gh-b", "humidity": 40}, DEFAULT_GH)
    assert event.greenhouse_id == "gh-b"
    assert len(event.samples) == 1
    assert event.samples[0].temperature is None  # type: ignore[union-attr]


@pytest.mark.parametrize("water_level", [0, -3.5])
def test_non_positive_water_level_is_skipped(water_level: float) -> None:
    event = adapt_flat({"deviceId": "ESP32_001", "waterLevel": water_level}, DEFAULT_GH)
    assert event.samples == []


@pytest.mark.parametrize(
    "payload",
    [
        {},
        {"deviceId": "   "},
        {"deviceId": "ESP32_001", "temperature": "hot"},
        ["not", "an", "object"],
    ],
)
def test_malformed_flat_payload_is_a_bad_request(payload: object) -> None:
    with pytest.raises(BadRequestError):
        adapt_flat(payload, DEFAULT_GH)


def test_nested_payload_maps_light_level_and_actuators() -> None:
    event = adapt_nested(
        {
            "deviceId": "ESP32_001",
            "sensors": {"temperature": 30, "lightLevel": 120},
            "actuators": {"waterPump": True, "window": False},
        },
        DEFAULT_GH,
    )

    assert [sample.sensor_type for sample in event.samples] == [SensorTypeEnum.dht11, SensorTypeEnum.ldr]
    assert [(r.device_id, r.status) for r in event.actuator_reports] == [
        ("WATER_PUMP_001", "ON"),
        ("WINDOW_SERVO_001", "CLOSED"),
    ]


def test_nested_payload_without_actuators_reports_nothing() -> None:
    event = adapt_nested({"deviceId": "ESP32_001", "sensors": {"humidity": 50}}, DEFAULT_GH)
    assert event.actuator_reports == []


def test_bulk_adapts_every_item() -> None:
    events = adapt_bulk(
        {
            "readings": [
                {"deviceId": "ESP32_001", "temperature": 20},
                {"deviceId": "ESP32_002", "greenhouseId": "gh-b", "soilMoisture": 900},
            ]
        },
        DEFAULT_GH,
    )
    assert [(e.device_id, e.greenhouse_id) for e in events] == [("ESP32_001", DEFAULT_GH), ("ESP32_002", "gh-b")]


def test_bulk_rejects_whole_batch_and_names_the_bad_item() -> None:
    with pytest.raises(BadRequestError) as excinfo:
        adapt_bulk({"readings": [{"deviceId": "ESP32_001"}, {"temperature": 20}]}, DEFAULT_GH)
    assert excinfo.value.detail.startswith("readings[1]")


@pytest.mark.parametrize("payload", [{"readings": []}, {"readings": "nope"}, {}])
def test_bulk_requires_a_non_empty_list(payload: object) -> None:
    with pytest.raises(BadRequestError):
        adapt_bulk(payload, DEFAULT_GH)


def test_status_report_parsing() -> None:
    report = parse_status_report({"deviceId": "FAN_001", "status": "ON", "autoMode": True, "intensity": 80})
    assert (report.device_id, report.status, report.auto_mode, report.intensity) == ("FAN_001", "ON", True, 80)

    with pytest.raises(BadRequestError):
        parse_status_report({"deviceId": "FAN_001", "status": "ON", "intensity": 150})


@pytest.mark.parametrize(
    "payload",
    [
        {"deviceId": "ESP32_001", "temperature": 25, "lightIntensity": float("nan")},
        {"deviceId": "ESP32_001", "waterLevel": float("inf")},
        {"deviceId": "ESP32_001", "soilMoisture": float("-inf")},
    ],
)
def test_non_finite_values_are_a_bad_request(payload: dict) -> None:
    with pytest.raises(BadRequestError):
        adapt_flat(payload, DEFAULT_GH)


def test_nested_non_finite_values_are_a_bad_request() -> None:
    with pytest.raises(BadRequestError):
        adapt_nested({"deviceId": "ESP32_001", "sensors": {"lightLevel": float("nan")}}, DEFAULT_GH)


def test_fractional_values_reach_validation_untruncated() -> None:
    light, soil = adapt_flat(
        {"deviceId": "ESP32_001", "lightIntensity": 10000.9, "soilMoisture": -0.9},
        DEFAULT_GH,
    ).samples

    assert light.light_intensity == 10000.9  # type: ignore[union-attr]
    assert soil.soil_moisture == -0.9  # type: ignore[union-attr]
