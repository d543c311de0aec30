"""Authorization ヘッダー用のトークン解決"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Any, Protocol

import httpx
import structlog

logger = structlog.stdlib.get_logger(__name__)

BEARER_SCHEME = "Bearer"
_KNOWN_SCHEMES = ("bearer", "basic", "digest", "negotiate")


class TokenProvider(Protocol):
    """HTTP リクエストの外から呼ばれる場合に使うトークン取得戦略。"""

    def get_token(self) -> str | None: ...


def format_authorization(token: str) -> str:
    """認証スキームが付いていないトークンに Bearer を前置する。"""
    token = token.strip()
    scheme, _, credentials = token.partition(" ")
    if credentials and scheme.lower() in _KNOWN_SCHEMES:
        return token
    return f"{BEARER_SCHEME} {token}"


class StaticTokenProvider:
    """設定済みの固定トークンを返す。"""

    def __init__(self, token: str | None) -> None:
        self._token = token

    def get_token(self) -> str | None:
        return self._token


@dataclass
class _CachedToken:
    access_token: str
    token_type: str
    expires_at: float  # Unix timestamp

    def is_expired(self, buffer_seconds: float) -> bool:
        return time.time() >= (self.expires_at - buffer_seconds)

    @classmethod
    def from_response(cls, response: dict[str, Any]) -> _CachedToken:
        expires_in = int(response.get("expires_in", 3600))
        return cls(
            access_token=response["access_token"],
            token_type=response.get("token_type") or BEARER_SCHEME,
            expires_at=time.time() + expires_in,
        )


class ClientCredentialsTokenProvider:
    """OAuth2 Client Credentials フローでトークンを取得する。

    取得したトークンは期限切れ（バッファ付き）までキャッシュする。
    取得に失敗した場合はログを出して None を返し、Authorization なしで
    リクエストが送られる（結果は 401 として NETWORK_ERROR になる）。
    """

    def __init__(
        self,
        token_url: str,
        client_id: str,
        client_secret: str,
        *,
        scope: str = "",
        timeout_seconds: float = 10.0,
        expiry_buffer_seconds: float = 30.0,
        http_client: httpx.Client | None = None,
    ) -> None:
        self._token_url = token_url
        self._client_id = client_id
        self._client_secret = client_secret
        self._scope = scope
        self._expiry_buffer_seconds = expiry_buffer_seconds
        self._http_client = http_client or httpx.Client(timeout=timeout_seconds)
        self._cached: _CachedToken | None = None
        self._lock = threading.Lock()

    def _request_token(self) -> _CachedToken:
        data = {
            "grant_type": "client_credentials",
            "client_id": self._client_id,
            "client_secret": self._client_secret,
        }
        if self._scope:
            data["scope"] = self._scope
        resp = self._http_client.post(self._token_url, data=data)
        resp.raise_for_status()
        return _CachedToken.from_response(resp.json())

    def get_token(self) -> str | None:
        with self._lock:
            if self._cached is None or self._cached.is_expired(self._expiry_buffer_seconds):
                try:
                    self._cached = self._request_token()
                except (httpx.HTTPError, ValueError, KeyError) as e:
                    logger.warning(
                        "token request failed",
                        token_url=self._token_url,
                        error=str(e),
                    )
                    return None
            return f"{self._cached.token_type} {self._cached.access_token}"

    def close(self) -> None:
        self._http_client.close()
