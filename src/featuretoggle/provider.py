"""FeatureFlagProvider 抽象基底クラスと共通の値変換"""

from __future__ import annotations

import functools
import json
from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any, TypeVar

from pydantic import PydanticSchemaGenerationError, TypeAdapter, ValidationError

from .context import EvaluationContext
from .exceptions import FeatureFlagError
from .models import ErrorCode, FlagEvaluation, Reason, ValueType

T = TypeVar("T")

_BOOLEAN_KEYWORDS = {"true": True, "false": False}


class FeatureFlagProvider(ABC):
    """フラグ評価を実際に行うプロバイダーの抽象基底クラス。

    想定内の失敗（フラグなし・型不一致・通信エラーなど）では例外を送出せず、
    デフォルト値を保持した失敗の FlagEvaluation を返すこと。
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """プロバイダー名。"""
        ...

    @abstractmethod
    def evaluate_boolean(
        self,
        flag_key: str,
        default_value: bool,
        context: EvaluationContext,
        *,
        authorization: str | None = None,
    ) -> FlagEvaluation[bool]:
        """真偽値フラグを評価する。"""
        ...

    @abstractmethod
    def evaluate_string(
        self,
        flag_key: str,
        default_value: str,
        context: EvaluationContext,
        *,
        authorization: str | None = None,
    ) -> FlagEvaluation[str]:
        """文字列フラグを評価する。"""
        ...

    @abstractmethod
    def evaluate_number(
        self,
        flag_key: str,
        default_value: float,
        context: EvaluationContext,
        *,
        authorization: str | None = None,
    ) -> FlagEvaluation[float]:
        """数値フラグを評価する。"""
        ...

    @abstractmethod
    def evaluate_object(
        self,
        flag_key: str,
        default_value: T,
        context: EvaluationContext,
        *,
        value_type: type[T] | None = None,
        authorization: str | None = None,
    ) -> FlagEvaluation[T]:
        """構造化データのフラグを評価する。

        value_type を省略した場合は default_value の型に復元する。
        """
        ...

    @abstractmethod
    def flag_value_type(
        self, flag_key: str, *, authorization: str | None = None
    ) -> ValueType | None:
        """フラグ値の型を推定する。取得できない場合は None。"""
        ...

    def is_ready(self) -> bool:
        """プロバイダーが評価可能な状態かどうか。"""
        return True


@dataclass(frozen=True)
class RawFlag:
    """型変換前のフラグ値。"""

    value: str | None
    reason: str | None = None
    variant: str | None = None
    metadata: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ResolutionFailure:
    """フラグ値を取得できなかったことを表す結果。"""

    error_code: ErrorCode
    error_message: str
    metadata: Mapping[str, Any] = field(default_factory=dict)


def to_boolean(raw: str) -> bool:
    """true / false（大文字小文字を区別しない）を真偽値に変換する。"""
    try:
        return _BOOLEAN_KEYWORDS[raw.lower()]
    except KeyError:
        raise FeatureFlagError(
            ErrorCode.TYPE_MISMATCH,
            f"flag value is not a boolean: {raw!r}",
        ) from None


def _parse_float(raw: str) -> float:
    # float() は "1_000" のような桁区切りも受け付けるため除外する
    if "_" in raw:
        raise ValueError(f"digit separators are not allowed: {raw!r}")
    return float(raw)


def to_number(raw: str) -> float:
    try:
        return _parse_float(raw)
    except ValueError:
        raise FeatureFlagError(
            ErrorCode.TYPE_MISMATCH,
            f"flag value is not a number: {raw!r}",
        ) from None


@functools.lru_cache(maxsize=128)
def _type_adapter(target: Any) -> TypeAdapter[Any]:
    return TypeAdapter(target)


def to_object(raw: str, default_value: Any, value_type: type[Any] | None) -> Any:
    """JSON 文字列を value_type（省略時は default_value の型）に復元する。

    復元先の型が決まらない場合（value_type なし・デフォルト値 None）は
    文字列をそのまま返す。
    """
    target = value_type or (type(default_value) if default_value is not None else None)
    if target is None:
        return raw
    try:
        return _type_adapter(target).validate_json(raw)
    except (ValidationError, PydanticSchemaGenerationError, TypeError) as e:
        raise FeatureFlagError(
            ErrorCode.PARSE_ERROR,
            f"cannot decode flag value as {getattr(target, '__name__', target)}",
            cause=e,
        ) from e


def infer_value_type(raw: str) -> ValueType:
    """真偽値 -> 数値 -> JSON オブジェクト -> 文字列 の順に型を推定する。"""
    if raw.lower() in _BOOLEAN_KEYWORDS:
        return ValueType.BOOLEAN
    try:
        _parse_float(raw)
    except ValueError:
        pass
    else:
        return ValueType.NUMBER
    trimmed = raw.strip()
    if trimmed.startswith("{") and trimmed.endswith("}"):
        return ValueType.OBJECT
    return ValueType.STRING


def to_raw_value(value: Any) -> str | None:
    """文字列以外の値を JSON テキストに正規化する。"""
    if value is None or isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False)


class RawValueProvider(FeatureFlagProvider):
    """文字列のフラグ値を取得して各型に変換するプロバイダーの共通実装。"""

    @abstractmethod
    def resolve(
        self,
        flag_key: str,
        context: EvaluationContext,
        *,
        authorization: str | None = None,
    ) -> RawFlag | ResolutionFailure:
        """フラグの生の値を取得する。"""
        ...

    def _evaluate(
        self,
        flag_key: str,
        default_value: T,
        context: EvaluationContext,
        authorization: str | None,
        convert: Callable[[str], T],
    ) -> FlagEvaluation[T]:
        resolved = self.resolve(flag_key, context, authorization=authorization)
        if isinstance(resolved, ResolutionFailure):
            return FlagEvaluation.failure(
                default_value,
                resolved.error_code,
                resolved.error_message,
                {"flag_key": flag_key, **resolved.metadata},
            )

        metadata = {"flag_key": flag_key, **resolved.metadata}
        if resolved.value is None:
            return FlagEvaluation.failure(
                default_value,
                ErrorCode.TYPE_MISMATCH,
                f"flag '{flag_key}' has no value",
                metadata,
            )
        reason = resolved.reason or Reason.UNKNOWN
        if reason == Reason.ERROR:
            return FlagEvaluation.failure(
                default_value,
                ErrorCode.GENERAL,
                f"flag '{flag_key}' was evaluated with reason ERROR but no error code",
                metadata,
            )
        try:
            value = convert(resolved.value)
        except FeatureFlagError as e:
            return FlagEvaluation.failure(default_value, e.code, e.args[0], metadata)
        return FlagEvaluation.success(value, reason, resolved.variant, metadata)

    def evaluate_boolean(
        self,
        flag_key: str,
        default_value: bool,
        context: EvaluationContext,
        *,
        authorization: str | None = None,
    ) -> FlagEvaluation[bool]:
        return self._evaluate(flag_key, default_value, context, authorization, to_boolean)

    def evaluate_string(
        self,
        flag_key: str,
        default_value: str,
        context: EvaluationContext,
        *,
        authorization: str | None = None,
    ) -> FlagEvaluation[str]:
        return self._evaluate(flag_key, default_value, context, authorization, str)

    def evaluate_number(
        self,
        flag_key: str,
        default_value: float,
        context: EvaluationContext,
        *,
        authorization: str | None = None,
    ) -> FlagEvaluation[float]:
        return self._evaluate(flag_key, default_value, context, authorization, to_number)

    def evaluate_object(
        self,
        flag_key: str,
        default_value: T,
        context: EvaluationContext,
        *,
        value_type: type[T] | None = None,
        authorization: str | None = None,
    ) -> FlagEvaluation[T]:
        return self._evaluate(
            flag_key,
            default_value,
            context,
            authorization,
            lambda raw: to_object(raw, default_value, value_type),
        )

    def flag_value_type(
        self, flag_key: str, *, authorization: str | None = None
    ) -> ValueType | None:
        resolved = self.resolve(
            flag_key, EvaluationContext.empty(), authorization=authorization
        )
        if isinstance(resolved, ResolutionFailure) or resolved.value is None:
            return None
        return infer_value_type(resolved.value)


class InMemoryFeatureFlagProvider(RawValueProvider):
    """テスト・ローカル開発用のインメモリプロバイダー。"""

    def __init__(self) -> None:
        self._flags: dict[str, RawFlag] = {}
        self._ready = True

    @property
    def name(self) -> str:
        return "InMemoryFeatureFlagProvider"

    def set_flag(
        self,
        flag_key: str,
        value: Any,
        *,
        reason: str = Reason.TARGETING_MATCH,
        variant: str | None = None,
    ) -> None:
        """フラグを設定する。文字列以外の値は JSON テキストとして保持する。"""
        self._flags[flag_key] = RawFlag(
            value=to_raw_value(value), reason=reason, variant=variant
        )

    def remove_flag(self, flag_key: str) -> None:
        self._flags.pop(flag_key, None)

    def set_ready(self, ready: bool) -> None:
        self._ready = ready

    def is_ready(self) -> bool:
        return self._ready

    def resolve(
        self,
        flag_key: str,
        context: EvaluationContext,
        *,
        authorization: str | None = None,
    ) -> RawFlag | ResolutionFailure:
        flag = self._flags.get(flag_key)
        if flag is None:
            return ResolutionFailure(
                ErrorCode.FLAG_NOT_FOUND, f"flag not found: {flag_key}"
            )
        return flag
