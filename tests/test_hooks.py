"""LoggingHook / MetricsHook のユニットテスト"""

from typing import Any

import pytest
from featuretoggle import (
    ErrorCode,
    EvaluationError,
    FeatureFlagClient,
    InMemoryFeatureFlagProvider,
    LoggingHook,
    MetricsHook,
)
from featuretoggle.provider import RawValueProvider
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import InMemoryMetricReader
from structlog.testing import capture_logs


class BrokenProvider(RawValueProvider):
    @property
    def name(self) -> str:
        return "BrokenProvider"

    def resolve(self, flag_key, context, *, authorization=None):  # type: ignore[no-untyped-def]
        raise RuntimeError("backend exploded")


def make_provider() -> InMemoryFeatureFlagProvider:
    provider = InMemoryFeatureFlagProvider()
    provider.set_flag("new-feature", "true", variant="on")
    provider.set_flag("limit", "abc")
    return provider


@pytest.fixture
def metric_reader() -> InMemoryMetricReader:
    return InMemoryMetricReader()


def make_metrics_hook(reader: InMemoryMetricReader) -> MetricsHook:
    meter_provider = MeterProvider(metric_readers=[reader])
    return MetricsHook(meter_provider.get_meter("featuretoggle-test"))


def collect(reader: InMemoryMetricReader) -> dict[str, list[Any]]:
    points: dict[str, list[Any]] = {}
    data = reader.get_metrics_data()
    if data is None:
        return points
    for resource_metrics in data.resource_metrics:
        for scope_metrics in resource_metrics.scope_metrics:
            for metric in scope_metrics.metrics:
                points.setdefault(metric.name, []).extend(metric.data.data_points)
    return points


def test_logging_hook_logs_success() -> None:
    """成功した評価を info で記録すること。"""
    client = FeatureFlagClient(make_provider(), hooks=[LoggingHook()])
    with capture_logs() as logs:
        client.get_boolean_value("new-feature", False)

    events = {log["event"]: log for log in logs}
    assert "flag evaluation started" in events
    evaluated = events["flag evaluated"]
    assert evaluated["log_level"] == "info"
    assert evaluated["flag_key"] == "new-feature"
    assert evaluated["variant"] == "on"
    assert evaluated["elapsed_seconds"] >= 0


def test_logging_hook_logs_failed_evaluation() -> None:
    """失敗の評価結果を warning で記録すること。"""
    client = FeatureFlagClient(make_provider(), hooks=[LoggingHook()])
    with capture_logs() as logs:
        client.get_number_value("limit", 1.0)

    failed = [log for log in logs if log["event"] == "flag evaluation failed"]
    assert len(failed) == 1
    assert failed[0]["log_level"] == "warning"
    assert failed[0]["error_code"] == ErrorCode.TYPE_MISMATCH


def test_logging_hook_logs_provider_exception() -> None:
    """プロバイダーの例外を error で記録すること。"""
    client = FeatureFlagClient(BrokenProvider(), hooks=[LoggingHook()])
    with capture_logs() as logs:
        client.get_string_value("theme", "light")

    raised = [log for log in logs if log["event"] == "flag evaluation raised"]
    assert len(raised) == 1
    assert raised[0]["log_level"] == "error"
    assert raised[0]["error_type"] == "RuntimeError"


def test_failing_hook_is_logged() -> None:
    """フックの例外は warning として記録されること。"""

    class ExplodingHook(LoggingHook):
        def before(self, flag_key, default_value, context, hook_context) -> None:  # type: ignore[no-untyped-def]
            raise RuntimeError("hook exploded")

    client = FeatureFlagClient(make_provider(), hooks=[ExplodingHook()])
    with capture_logs() as logs:
        assert client.get_boolean_value("new-feature", False) is True

    failures = [log for log in logs if log["event"] == "hook failed"]
    assert len(failures) == 1
    assert failures[0]["stage"] == "before"
    assert failures[0]["hook"] == "ExplodingHook"


def test_metrics_hook_counts_evaluations(metric_reader: InMemoryMetricReader) -> None:
    """評価回数と所要時間を記録すること。"""
    client = FeatureFlagClient(make_provider(), hooks=[make_metrics_hook(metric_reader)])
    client.get_boolean_value("new-feature", False)
    client.get_boolean_value("new-feature", False)
    client.get_number_value("limit", 1.0)

    points = collect(metric_reader)
    counts = {
        (p.attributes["flag_key"], p.attributes["error_code"]): p.value
        for p in points["feature_flag_evaluations_total"]
    }
    assert counts[("new-feature", "")] == 2
    assert counts[("limit", "TYPE_MISMATCH")] == 1

    durations = points["feature_flag_evaluation_duration_seconds"]
    assert sum(p.count for p in durations) == 3


def test_metrics_hook_counts_provider_exception(metric_reader: InMemoryMetricReader) -> None:
    """プロバイダーの例外も ERROR として数えること。"""
    client = FeatureFlagClient(BrokenProvider(), hooks=[make_metrics_hook(metric_reader)])
    client.get_string_value("theme", "light")

    points = collect(metric_reader)
    (point,) = points["feature_flag_evaluations_total"]
    assert point.attributes["reason"] == "ERROR"
    assert point.attributes["error_code"] == "GENERAL"
    assert point.value == 1


def test_metrics_hook_labels_exception_with_error_code(
    metric_reader: InMemoryMetricReader,
) -> None:
    """例外のラベルはパイプラインが返す ErrorCode と一致すること。"""

    class ParseFailingProvider(BrokenProvider):
        def resolve(self, flag_key, context, *, authorization=None):  # type: ignore[no-untyped-def]
            raise EvaluationError(flag_key, ErrorCode.PARSE_ERROR, "bad payload")

    client = FeatureFlagClient(
        ParseFailingProvider(), hooks=[make_metrics_hook(metric_reader)]
    )
    evaluation = client.get_object_evaluation("limits", {})

    (point,) = collect(metric_reader)["feature_flag_evaluations_total"]
    assert point.attributes["error_code"] == "PARSE_ERROR"
    assert point.attributes["error_code"] == evaluation.error_code
