"""フィーチャーフラグクライアント（評価パイプライン）"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from typing import Any, TypeVar

import structlog

from .context import EvaluationContext, HookContext
from .exceptions import FeatureFlagError, ProviderNotReadyError
from .hooks import Hook
from .models import ErrorCode, FlagEvaluation
from .provider import FeatureFlagProvider

T = TypeVar("T")

logger = structlog.stdlib.get_logger(__name__)


class FeatureFlagClient:
    """アプリケーションが使うフラグ評価クライアント。

    1 回の評価ごとにフックを次の順で呼び出す。

        before -> provider.evaluate_* -> (after | on_error) -> finally_after

    各フックは登録順に呼ばれる。フックの例外はログに出して握りつぶし、
    後続のフックや後続の段階の実行を妨げない。finally_after はどの経路でも
    必ず全フックに対して呼ばれる。

    プロバイダーが例外を送出した場合は on_error の後、デフォルト値を持つ
    失敗結果に変換する。ErrorCode は FeatureFlagError ならその code、
    それ以外は GENERAL。したがって *_value 系のメソッドはプロバイダーの
    失敗で例外を送出しない。
    """

    def __init__(
        self,
        provider: FeatureFlagProvider,
        hooks: Iterable[Hook] | None = None,
        name: str | None = None,
    ) -> None:
        self._provider = provider
        self._hooks: list[Hook] = list(hooks or [])
        self._name = name or provider.name

    @property
    def name(self) -> str:
        return self._name

    @property
    def provider(self) -> FeatureFlagProvider:
        return self._provider

    @property
    def hooks(self) -> tuple[Hook, ...]:
        return tuple(self._hooks)

    def add_hooks(self, *hooks: Hook) -> None:
        self._hooks.extend(hooks)

    # --- boolean ---

    def get_boolean_value(
        self,
        flag_key: str,
        default_value: bool,
        context: EvaluationContext | None = None,
        *,
        authorization: str | None = None,
    ) -> bool:
        return self.get_boolean_evaluation(
            flag_key, default_value, context, authorization=authorization
        ).value

    def get_boolean_evaluation(
        self,
        flag_key: str,
        default_value: bool,
        context: EvaluationContext | None = None,
        *,
        authorization: str | None = None,
    ) -> FlagEvaluation[bool]:
        return self._evaluate(
            flag_key,
            default_value,
            context,
            lambda ctx: self._provider.evaluate_boolean(
                flag_key, default_value, ctx, authorization=authorization
            ),
        )

    # --- string ---

    def get_string_value(
        self,
        flag_key: str,
        default_value: str,
        context: EvaluationContext | None = None,
        *,
        authorization: str | None = None,
    ) -> str:
        return self.get_string_evaluation(
            flag_key, default_value, context, authorization=authorization
        ).value

    def get_string_evaluation(
        self,
        flag_key: str,
        default_value: str,
        context: EvaluationContext | None = None,
        *,
        authorization: str | None = None,
    ) -> FlagEvaluation[str]:
        return self._evaluate(
            flag_key,
            default_value,
            context,
            lambda ctx: self._provider.evaluate_string(
                flag_key, default_value, ctx, authorization=authorization
            ),
        )

    # --- number ---

    def get_number_value(
        self,
        flag_key: str,
        default_value: float,
        context: EvaluationContext | None = None,
        *,
        authorization: str | None = None,
    ) -> float:
        return self.get_number_evaluation(
            flag_key, default_value, context, authorization=authorization
        ).value

    def get_number_evaluation(
        self,
        flag_key: str,
        default_value: float,
        context: EvaluationContext | None = None,
        *,
        authorization: str | None = None,
    ) -> FlagEvaluation[float]:
        return self._evaluate(
            flag_key,
            default_value,
            context,
            lambda ctx: self._provider.evaluate_number(
                flag_key, default_value, ctx, authorization=authorization
            ),
        )

    # --- object ---

    def get_object_value(
        self,
        flag_key: str,
        default_value: T,
        context: EvaluationContext | None = None,
        *,
        value_type: type[T] | None = None,
        authorization: str | None = None,
    ) -> T:
        return self.get_object_evaluation(
            flag_key,
            default_value,
            context,
            value_type=value_type,
            authorization=authorization,
        ).value

    def get_object_evaluation(
        self,
        flag_key: str,
        default_value: T,
        context: EvaluationContext | None = None,
        *,
        value_type: type[T] | None = None,
        authorization: str | None = None,
    ) -> FlagEvaluation[T]:
        """構造化データのフラグを評価する。

        value_type で復元先の型を明示する。省略時は default_value の型、
        default_value も None の場合は生の文字列を返す。
        """
        return self._evaluate(
            flag_key,
            default_value,
            context,
            lambda ctx: self._provider.evaluate_object(
                flag_key,
                default_value,
                ctx,
                value_type=value_type,
                authorization=authorization,
            ),
        )

    # --- pipeline ---

    def _evaluate(
        self,
        flag_key: str,
        default_value: T,
        context: EvaluationContext | None,
        evaluate: Callable[[EvaluationContext], FlagEvaluation[T]],
    ) -> FlagEvaluation[T]:
        if not isinstance(flag_key, str) or not flag_key:
            raise ValueError("flag_key must be a non-empty string")

        ctx = context if context is not None else EvaluationContext.empty()
        hooks = tuple(self._hooks)
        hook_context = HookContext()
        try:
            for hook in hooks:
                self._run_hook(
                    hook, "before", flag_key, default_value, ctx, hook_context
                )

            try:
                if not self._provider.is_ready():
                    raise ProviderNotReadyError(self._provider.name)
                evaluation = evaluate(ctx)
            except Exception as e:
                logger.warning(
                    "provider evaluation raised",
                    flag_key=flag_key,
                    provider=self._provider.name,
                    error=str(e),
                )
                for hook in hooks:
                    self._run_hook(hook, "on_error", flag_key, e, hook_context)
                return FlagEvaluation.failure(
                    default_value,
                    e.code if isinstance(e, FeatureFlagError) else ErrorCode.GENERAL,
                    str(e),
                    {"flag_key": flag_key},
                )

            for hook in hooks:
                self._run_hook(hook, "after", flag_key, evaluation, hook_context)
            return evaluation
        finally:
            for hook in hooks:
                self._run_hook(hook, "finally_after", flag_key, hook_context)

    def _run_hook(self, hook: Hook, stage: str, flag_key: str, *args: Any) -> None:
        try:
            getattr(hook, stage)(flag_key, *args)
        except Exception as e:
            logger.warning(
                "hook failed",
                hook=hook.name,
                stage=stage,
                flag_key=flag_key,
                error=str(e),
            )
