from __future__ import annotations

import pytest

from models.records import Metric, MetricKind, Severity
from services.aggregator import classify


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        (30, Severity.warning),
        (30.0001, Severity.critical),
        (29, Severity.warning),
        (28, Severity.normal),
        (20, Severity.normal),
        (15, Severity.normal),
        (14.9, Severity.warning),
        (10, Severity.warning),
        (9.99, Severity.critical),
        (32, Severity.critical),
    ],
)
def test_temperature_bands(value: float, expected: Severity) -> None:
    assert classify(MetricKind.temperature, value) is expected


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        (15, Severity.critical),
        (20, Severity.warning),
        (25, Severity.warning),
        (30, Severity.normal),
        (70, Severity.normal),
        (75, Severity.warning),
        (80, Severity.warning),
        (80.5, Severity.critical),
    ],
)
def test_moisture_bands(value: float, expected: Severity) -> None:
    assert classify(MetricKind.moisture, value) is expected


@pytest.mark.parametrize(
    ("kind", "critical", "warning"),
    [
        (MetricKind.orientation, 30, 15),
        (MetricKind.acceleration, 2000, 1000),
        (MetricKind.angular_rate, 250, 100),
    ],
)
def test_symmetric_bands_use_magnitude(kind: MetricKind, critical: float, warning: float) -> None:
    for sign in (1, -1):
        assert classify(kind, sign * (critical + 1)) is Severity.critical
        assert classify(kind, sign * critical) is Severity.warning
        assert classify(kind, sign * (warning + 1)) is Severity.warning
        assert classify(kind, sign * warning) is Severity.normal
    assert classify(kind, 0) is Severity.normal


@pytest.mark.parametrize("kind", list(MetricKind))
def test_absent_value_is_normal_for_every_kind(kind: MetricKind) -> None:
    assert classify(kind, None) is Severity.normal


def test_zero_is_a_value_not_an_absence() -> None:
    assert classify(MetricKind.temperature, 0) is Severity.critical
    assert classify(MetricKind.moisture, 0.0) is Severity.critical


def test_kind_accepts_string_values() -> None:
    assert classify("temperature", 32) is Severity.critical
    assert classify("angular_rate", -120) is Severity.warning


def test_unknown_kind_fails_fast() -> None:
    with pytest.raises(ValueError):
        classify("humidity", 50)
    with pytest.raises(ValueError):
        classify("humidity", None)


def test_every_metric_maps_to_a_kind() -> None:
    for metric in Metric:
        assert classify(metric.kind, None) is Severity.normal
