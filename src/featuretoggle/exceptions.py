"""featuretoggle ライブラリの例外型定義"""

from __future__ import annotations

from .models import ErrorCode


class FeatureFlagError(Exception):
    """featuretoggle ライブラリのエラー基底クラス。

    code はパイプラインが失敗結果に載せる ErrorCode として使われる。
    """

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        if cause is not None:
            self.__cause__ = cause

    def __str__(self) -> str:
        return f"{self.code}: {super().__str__()}"


class EvaluationError(FeatureFlagError):
    """特定のフラグの評価に失敗したことを表すエラー。"""

    def __init__(
        self,
        flag_key: str,
        code: ErrorCode,
        message: str,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(code, f"flag '{flag_key}': {message}", cause)
        self.flag_key = flag_key


class ProviderNotReadyError(FeatureFlagError):
    """プロバイダーが評価可能な状態にないことを表すエラー。"""

    def __init__(self, provider_name: str) -> None:
        super().__init__(
            ErrorCode.PROVIDER_NOT_READY,
            f"provider is not ready: {provider_name}",
        )
        self.provider_name = provider_name


class ConfigError(Exception):
    """設定読み込みのエラー。"""

    def __init__(
        self,
        code: str,
        message: str,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        if cause is not None:
            self.__cause__ = cause

    def __str__(self) -> str:
        return f"{self.code}: {super().__str__()}"


class ConfigErrorCodes:
    """ConfigError のエラーコード定数。"""

    READ_FILE: str = "READ_FILE_ERROR"
    PARSE_YAML: str = "PARSE_YAML_ERROR"
    VALIDATION: str = "VALIDATION_ERROR"
