"""評価ライフサイクルのフック"""

from __future__ import annotations

import time
from typing import Any

import structlog
from opentelemetry import metrics

from .context import EvaluationContext, HookContext
from .exceptions import FeatureFlagError
from .models import ErrorCode, FlagEvaluation, Reason


class Hook:
    """評価パイプラインの拡張ポイント。

    4 つのメソッドはすべて何もしない実装を持つ。必要なものだけ上書きする。
    呼び出し順は before -> (after | on_error) -> finally_after。
    """

    @property
    def name(self) -> str:
        return type(self).__name__

    @property
    def _started_at_key(self) -> str:
        # 複数のフックが同じ HookContext を共有するため名前で区切る
        return f"{self.name}.started_at"

    def before(
        self,
        flag_key: str,
        default_value: Any,
        context: EvaluationContext,
        hook_context: HookContext,
    ) -> None:
        """プロバイダー呼び出しの前に呼ばれる。"""

    def after(
        self,
        flag_key: str,
        evaluation: FlagEvaluation[Any],
        hook_context: HookContext,
    ) -> None:
        """プロバイダーが評価結果を返したときに呼ばれる。"""

    def on_error(
        self,
        flag_key: str,
        error: Exception,
        hook_context: HookContext,
    ) -> None:
        """プロバイダー呼び出しが例外を送出したときに呼ばれる。"""

    def finally_after(self, flag_key: str, hook_context: HookContext) -> None:
        """結果にかかわらず最後に必ず呼ばれる。"""


def _elapsed(hook_context: HookContext, key: str) -> float | None:
    started_at = hook_context.get_typed(key, float)
    if started_at is None:
        return None
    return time.monotonic() - started_at


class LoggingHook(Hook):
    """評価の各段階を structlog に出力するフック。"""

    def __init__(self, logger: structlog.stdlib.BoundLogger | None = None) -> None:
        self._logger = logger or structlog.stdlib.get_logger(__name__)

    def before(
        self,
        flag_key: str,
        default_value: Any,
        context: EvaluationContext,
        hook_context: HookContext,
    ) -> None:
        hook_context.set(self._started_at_key, time.monotonic())
        self._logger.debug(
            "flag evaluation started",
            flag_key=flag_key,
            targeting_key=context.targeting_key,
        )

    def after(
        self,
        flag_key: str,
        evaluation: FlagEvaluation[Any],
        hook_context: HookContext,
    ) -> None:
        if evaluation.has_error:
            self._logger.warning(
                "flag evaluation failed",
                flag_key=flag_key,
                error_code=evaluation.error_code,
                error_message=evaluation.error_message,
                elapsed_seconds=_elapsed(hook_context, self._started_at_key),
            )
            return
        self._logger.info(
            "flag evaluated",
            flag_key=flag_key,
            reason=evaluation.reason,
            variant=evaluation.variant,
            elapsed_seconds=_elapsed(hook_context, self._started_at_key),
        )

    def on_error(
        self,
        flag_key: str,
        error: Exception,
        hook_context: HookContext,
    ) -> None:
        self._logger.error(
            "flag evaluation raised",
            flag_key=flag_key,
            error_type=type(error).__name__,
            error=str(error),
            elapsed_seconds=_elapsed(hook_context, self._started_at_key),
        )


class MetricsHook(Hook):
    """評価回数と所要時間を OpenTelemetry メトリクスとして記録するフック。"""

    def __init__(self, meter: metrics.Meter | None = None) -> None:
        meter = meter or metrics.get_meter("featuretoggle", version="0.1.0")
        self._evaluations_total = meter.create_counter(
            name="feature_flag_evaluations_total",
            description="Total number of feature flag evaluations",
            unit="1",
        )
        self._evaluation_duration = meter.create_histogram(
            name="feature_flag_evaluation_duration_seconds",
            description="Feature flag evaluation duration in seconds",
            unit="s",
        )

    def before(
        self,
        flag_key: str,
        default_value: Any,
        context: EvaluationContext,
        hook_context: HookContext,
    ) -> None:
        hook_context.set(self._started_at_key, time.monotonic())

    def after(
        self,
        flag_key: str,
        evaluation: FlagEvaluation[Any],
        hook_context: HookContext,
    ) -> None:
        self._evaluations_total.add(
            1,
            {
                "flag_key": flag_key,
                "reason": evaluation.reason,
                "error_code": str(evaluation.error_code or ""),
            },
        )

    def on_error(
        self,
        flag_key: str,
        error: Exception,
        hook_context: HookContext,
    ) -> None:
        code = error.code if isinstance(error, FeatureFlagError) else ErrorCode.GENERAL
        self._evaluations_total.add(
            1,
            {"flag_key": flag_key, "reason": Reason.ERROR, "error_code": str(code)},
        )

    def finally_after(self, flag_key: str, hook_context: HookContext) -> None:
        elapsed = _elapsed(hook_context, self._started_at_key)
        if elapsed is not None:
            self._evaluation_duration.record(elapsed, {"flag_key": flag_key})
