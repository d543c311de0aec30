"""REST API を使った FeatureFlagProvider 実装"""

from __future__ import annotations

from typing import Any

from .context import EvaluationContext
from .http_client import (
    FeatureToggleResponse,
    FetchFailure,
    FetchNotFound,
    RestFeatureToggleClient,
)
from .models import ErrorCode
from .provider import RawFlag, RawValueProvider, ResolutionFailure

# ErrorCode 名と一致しないリモートのエラーコード
_REMOTE_ERROR_ALIASES: dict[str, ErrorCode] = {
    "NOT_FOUND": ErrorCode.FLAG_NOT_FOUND,
    "UNKNOWN_FLAG": ErrorCode.FLAG_NOT_FOUND,
    "INVALID_TYPE": ErrorCode.TYPE_MISMATCH,
    "TYPE_ERROR": ErrorCode.TYPE_MISMATCH,
    "NOT_READY": ErrorCode.PROVIDER_NOT_READY,
    "PROVIDER_UNAVAILABLE": ErrorCode.PROVIDER_NOT_READY,
    "INVALID_JSON": ErrorCode.PARSE_ERROR,
    "PARSE_FAILURE": ErrorCode.PARSE_ERROR,
    "TIMEOUT": ErrorCode.NETWORK_ERROR,
    "UNAVAILABLE": ErrorCode.NETWORK_ERROR,
    "CONNECTION_ERROR": ErrorCode.NETWORK_ERROR,
}


def map_remote_error_code(remote_code: str | None) -> ErrorCode:
    """リモートのエラーコードをローカルの ErrorCode に変換する。

    名前の完全一致（大文字小文字・区切り文字を無視）-> 別名 -> GENERAL。
    """
    if not remote_code:
        return ErrorCode.GENERAL
    code = remote_code.strip().upper().replace("-", "_").replace(" ", "_")
    try:
        return ErrorCode(code)
    except ValueError:
        return _REMOTE_ERROR_ALIASES.get(code, ErrorCode.GENERAL)


class RestFeatureFlagProvider(RawValueProvider):
    """フィーチャートグル REST API と連携するプロバイダー。

    404 は FLAG_NOT_FOUND、通信エラーや 401 を含む HTTP エラーは NETWORK_ERROR、
    レスポンスの errorCode はローカルの ErrorCode に変換して失敗結果を返す。
    いずれの場合も例外は送出しない。
    """

    def __init__(self, client: RestFeatureToggleClient) -> None:
        self._client = client

    @property
    def name(self) -> str:
        return "RestFeatureFlagProvider"

    @property
    def client(self) -> RestFeatureToggleClient:
        return self._client

    def is_ready(self) -> bool:
        # ネットワークは確認しない。失敗は評価ごとに扱う
        return not self._client.closed

    def resolve(
        self,
        flag_key: str,
        context: EvaluationContext,
        *,
        authorization: str | None = None,
    ) -> RawFlag | ResolutionFailure:
        result = self._client.fetch(flag_key, context, authorization=authorization)
        if isinstance(result, FetchNotFound):
            return ResolutionFailure(
                ErrorCode.FLAG_NOT_FOUND, f"flag not found: {flag_key}"
            )
        if isinstance(result, FetchFailure):
            return ResolutionFailure(ErrorCode.NETWORK_ERROR, result.detail)

        response = result.response
        metadata = _metadata(flag_key, response)
        if response.has_remote_error:
            message = (
                response.error_message
                or f"remote evaluation failed (code: {response.error_code})"
            )
            return ResolutionFailure(
                map_remote_error_code(response.error_code),
                message,
                {"flag_key": metadata["flag_key"]},
            )
        return RawFlag(
            value=response.value,
            reason=response.reason,
            variant=response.variant,
            metadata=metadata,
        )


def _metadata(flag_key: str, response: FeatureToggleResponse) -> dict[str, Any]:
    metadata: dict[str, Any] = {"flag_key": response.flagkey or flag_key}
    if response.reason is not None:
        metadata["remote_reason"] = response.reason
    if response.variant is not None:
        metadata["remote_variant"] = response.variant
    return metadata
