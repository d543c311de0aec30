"""評価コンテキストとフックコンテキスト"""

from __future__ import annotations

import threading
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, TypeVar

T = TypeVar("T")


def _freeze(key: str, value: Any) -> Any:
    """属性値を検証し、ネストしたマッピングは読み取り専用にする。"""
    if value is None or isinstance(value, str | bool | int | float):
        return value
    if isinstance(value, Mapping):
        return MappingProxyType(
            {str(k): _freeze(f"{key}.{k}", v) for k, v in value.items()}
        )
    raise TypeError(
        f"unsupported attribute value for {key!r}: {type(value).__name__}"
    )


@dataclass(frozen=True)
class EvaluationContext:
    """フラグ評価コンテキスト。

    ターゲティングキーと属性の不変な集合。属性キーは大文字小文字を区別する。
    値は str / int / float / bool / None、またはそれらをネストしたマッピング。
    """

    targeting_key: str | None = None
    attributes: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        frozen = {key: _freeze(key, value) for key, value in self.attributes.items()}
        object.__setattr__(self, "attributes", MappingProxyType(frozen))

    @classmethod
    def empty(cls) -> EvaluationContext:
        return cls()

    @classmethod
    def builder(cls) -> EvaluationContextBuilder:
        return EvaluationContextBuilder()

    def get_attribute(self, key: str) -> Any:
        return self.attributes.get(key)

    def has_attribute(self, key: str) -> bool:
        return key in self.attributes

    def get_string(self, key: str) -> str | None:
        value = self.attributes.get(key)
        return value if isinstance(value, str) else None

    def get_int(self, key: str) -> int | None:
        value = self.attributes.get(key)
        if isinstance(value, bool) or not isinstance(value, int | float):
            return None
        return int(value)

    def get_float(self, key: str) -> float | None:
        value = self.attributes.get(key)
        if isinstance(value, bool) or not isinstance(value, int | float):
            return None
        return float(value)

    def get_bool(self, key: str) -> bool | None:
        value = self.attributes.get(key)
        return value if isinstance(value, bool) else None

    def merge(self, other: EvaluationContext | None) -> EvaluationContext:
        """other の値を優先して 2 つのコンテキストを結合する。"""
        if other is None:
            return self
        return EvaluationContext(
            targeting_key=other.targeting_key or self.targeting_key,
            attributes={**self.attributes, **other.attributes},
        )


class EvaluationContextBuilder:
    """EvaluationContext のビルダー。同じキーは後勝ち。"""

    def __init__(self) -> None:
        self._targeting_key: str | None = None
        self._attributes: dict[str, Any] = {}

    def targeting_key(self, targeting_key: str | None) -> EvaluationContextBuilder:
        self._targeting_key = targeting_key
        return self

    def attribute(self, key: str, value: Any) -> EvaluationContextBuilder:
        self._attributes[key] = _freeze(key, value)
        return self

    def attributes(self, attributes: Mapping[str, Any] | None) -> EvaluationContextBuilder:
        for key, value in (attributes or {}).items():
            self.attribute(key, value)
        return self

    def build(self) -> EvaluationContext:
        return EvaluationContext(
            targeting_key=self._targeting_key,
            attributes=dict(self._attributes),
        )


class HookContext:
    """1 回の評価呼び出しの間だけ存在するフック間の共有領域。

    before で記録した値を after で読む、といった受け渡しに使う。
    フックが別スレッドで呼ばれても安全なようにロックで保護する。
    """

    def __init__(self) -> None:
        self._data: dict[str, Any] = {}
        self._lock = threading.Lock()

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._data[key] = value

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            return self._data.get(key, default)

    def get_typed(self, key: str, type_: type[T]) -> T | None:
        """値が type_ のインスタンスであれば返し、それ以外は None を返す。"""
        value = self.get(key)
        return value if isinstance(value, type_) else None

    def has(self, key: str) -> bool:
        with self._lock:
            return key in self._data

    def remove(self, key: str) -> Any:
        with self._lock:
            return self._data.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._data.clear()

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            return dict(self._data)
