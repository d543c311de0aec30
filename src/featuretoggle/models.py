"""featuretoggle データモデル"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from types import MappingProxyType
from typing import Any, Generic, TypeVar

T = TypeVar("T")


class ErrorCode(StrEnum):
    """評価失敗の分類。"""

    FLAG_NOT_FOUND = "FLAG_NOT_FOUND"
    TYPE_MISMATCH = "TYPE_MISMATCH"
    PROVIDER_NOT_READY = "PROVIDER_NOT_READY"
    GENERAL = "GENERAL"
    PARSE_ERROR = "PARSE_ERROR"
    NETWORK_ERROR = "NETWORK_ERROR"


class ValueType(StrEnum):
    """フラグ値の型。"""

    BOOLEAN = "BOOLEAN"
    STRING = "STRING"
    NUMBER = "NUMBER"
    OBJECT = "OBJECT"


class Reason:
    """評価理由の定数。リモートが独自の理由を返すこともある。"""

    DEFAULT: str = "DEFAULT"
    TARGETING_MATCH: str = "TARGETING_MATCH"
    SPLIT: str = "SPLIT"
    DISABLED: str = "DISABLED"
    ERROR: str = "ERROR"
    UNKNOWN: str = "UNKNOWN"


class FlagMetadata(Mapping[str, Any]):
    """評価結果に付随する読み取り専用メタデータ。"""

    def __init__(self, attributes: Mapping[str, Any] | None = None) -> None:
        self._attributes: Mapping[str, Any] = MappingProxyType(dict(attributes or {}))

    def __getitem__(self, key: str) -> Any:
        return self._attributes[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._attributes)

    def __len__(self) -> int:
        return len(self._attributes)

    def __repr__(self) -> str:
        return f"FlagMetadata({dict(self._attributes)!r})"

    def get_string(self, key: str) -> str | None:
        value = self._attributes.get(key)
        return value if isinstance(value, str) else None

    def get_bool(self, key: str) -> bool | None:
        value = self._attributes.get(key)
        return value if isinstance(value, bool) else None

    def get_number(self, key: str) -> float | None:
        value = self._attributes.get(key)
        if isinstance(value, bool) or not isinstance(value, int | float):
            return None
        return float(value)


@dataclass(frozen=True)
class FlagEvaluation(Generic[T]):
    """1 回のフラグ評価の結果。

    ``value`` は常に設定される（失敗時は呼び出し元のデフォルト値）。
    ``error_code`` が設定されているのは失敗時のみで、そのとき ``reason`` は
    必ず ``"ERROR"`` になる。

    Raises:
        ValueError: error_code と reason の組み合わせが不整合な場合
    """

    value: T
    reason: str
    variant: str | None = None
    metadata: FlagMetadata = field(default_factory=FlagMetadata)
    error_code: ErrorCode | None = None
    error_message: str | None = None

    def __post_init__(self) -> None:
        if self.error_code is not None and self.reason != Reason.ERROR:
            raise ValueError(
                f"failed evaluation must have reason {Reason.ERROR!r}, got {self.reason!r}"
            )
        if self.error_code is None and self.reason == Reason.ERROR:
            raise ValueError(f"reason {Reason.ERROR!r} requires an error_code")
        if not isinstance(self.metadata, FlagMetadata):
            object.__setattr__(self, "metadata", FlagMetadata(self.metadata))

    @classmethod
    def success(
        cls,
        value: T,
        reason: str,
        variant: str | None = None,
        metadata: Mapping[str, Any] | None = None,
    ) -> FlagEvaluation[T]:
        """成功した評価結果を生成する。"""
        return cls(
            value=value,
            reason=reason,
            variant=variant,
            metadata=FlagMetadata(metadata),
        )

    @classmethod
    def failure(
        cls,
        default_value: T,
        error_code: ErrorCode,
        error_message: str,
        metadata: Mapping[str, Any] | None = None,
    ) -> FlagEvaluation[T]:
        """デフォルト値を保持した失敗の評価結果を生成する。"""
        return cls(
            value=default_value,
            reason=Reason.ERROR,
            metadata=FlagMetadata(metadata),
            error_code=error_code,
            error_message=error_message,
        )

    @property
    def is_success(self) -> bool:
        return self.error_code is None

    @property
    def has_error(self) -> bool:
        return self.error_code is not None
