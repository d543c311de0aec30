"""フィーチャートグル REST API の HTTP クライアント"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote

import httpx
import structlog

from .auth import TokenProvider, format_authorization
from .banking import BankingAttributes
from .context import EvaluationContext
from .provider import to_raw_value

logger = structlog.stdlib.get_logger(__name__)

HEADER_CHANNEL = "x-type-value-canal"
QUERY_CONTEXT_VALUE = BankingAttributes.VALOR_CONTEXTO

# valorContexto の候補。先頭から順に評価し、最初に空でない値を使う
CONTEXT_VALUE_CANDIDATES: tuple[tuple[str, str], ...] = (
    ("agencia", BankingAttributes.AGENCIA),
    ("codigoAgencia", BankingAttributes.CODIGO_AGENCIA),
    ("canal", BankingAttributes.CANAL),
    ("segmentoCliente", BankingAttributes.SEGMENTO_CLIENTE),
)


def _text(value: Any) -> str | None:
    # 数値などで返ってきたフィールドも文字列として扱う
    if value is None or isinstance(value, str):
        return value
    return str(value)


@dataclass
class FeatureToggleResponse:
    """1 つのフラグに対する API レスポンス。

    value は常に文字列として扱い、型変換はプロバイダーが行う。
    """

    flagkey: str | None = None
    value: str | None = None
    reason: str | None = None
    variant: str | None = None
    error_code: str | None = None
    error_message: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FeatureToggleResponse:
        """API レスポンス辞書から FeatureToggleResponse を生成する。"""
        return cls(
            flagkey=_text(data.get("flagkey")),
            value=to_raw_value(data.get("value")),
            reason=_text(data.get("reason")),
            variant=_text(data.get("variant")),
            error_code=_text(data.get("errorCode")),
            error_message=_text(data.get("errorMessage")),
        )

    @property
    def has_remote_error(self) -> bool:
        return bool(self.error_code and self.error_code.strip())


@dataclass(frozen=True)
class FetchSuccess:
    response: FeatureToggleResponse


@dataclass(frozen=True)
class FetchNotFound:
    pass


@dataclass(frozen=True)
class FetchFailure:
    detail: str
    status_code: int | None = None


FetchResult = FetchSuccess | FetchNotFound | FetchFailure


def _render(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _key_value(key: str, value: Any) -> str | None:
    if value is None:
        return None
    rendered = _render(value)
    if not rendered.strip():
        return None
    return f"{key}={rendered}"


def _first_non_blank(candidates: list[tuple[str, Callable[[], str | None]]]) -> str | None:
    for name, supplier in candidates:
        try:
            value = supplier()
        except Exception as e:
            # 1 つの候補の失敗で後続の候補の評価を止めない
            logger.debug("context value candidate skipped", candidate=name, error=str(e))
            continue
        if value is not None:
            return value
    return None


class RestFeatureToggleClient:
    """httpx を使ったフィーチャートグル API クライアント。

    httpx.Client は生成時に 1 つだけ作り、すべての評価で共有する。

    Endpoint:
        GET {base_url}/funcionalidades/jornadas/{flag_key}/parametros?valorContexto=agencia=100
    """

    def __init__(
        self,
        base_url: str,
        *,
        token_provider: TokenProvider | None = None,
        timeout_seconds: float = 5.0,
        http_client: httpx.Client | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._token_provider = token_provider
        self._http_client = http_client or httpx.Client(
            headers={"Accept": "application/json"},
            timeout=timeout_seconds,
            follow_redirects=True,
        )
        self._closed = False

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """HTTP クライアントと、close を持つ token_provider を閉じる。"""
        self._http_client.close()
        close_token_provider = getattr(self._token_provider, "close", None)
        if callable(close_token_provider):
            close_token_provider()
        self._closed = True

    def __enter__(self) -> RestFeatureToggleClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _resolve_token(self) -> str | None:
        if self._token_provider is None:
            return None
        try:
            return self._token_provider.get_token()
        except Exception as e:
            # トークンが得られない場合は Authorization なしで送る
            logger.warning("token provider failed", error=str(e))
            return None

    def build_headers(
        self, context: EvaluationContext | None, authorization: str | None = None
    ) -> dict[str, str]:
        """リクエストヘッダーを組み立てる。

        Authorization の優先順位:
            1. 呼び出し元から渡された authorization（そのまま使う）
            2. token_provider のトークン（スキームがなければ Bearer を付与）
            3. なし
        """
        headers: dict[str, str] = {"Accept": "application/json"}
        if authorization and authorization.strip():
            headers["Authorization"] = authorization
        else:
            token = self._resolve_token()
            if token and token.strip():
                headers["Authorization"] = format_authorization(token)

        if context is not None:
            channel = context.get_string(BankingAttributes.CANAL)
            if channel and channel.strip():
                headers[HEADER_CHANNEL] = channel
        return headers

    def build_query_params(self, context: EvaluationContext | None) -> dict[str, str]:
        """valorContexto クエリパラメータを組み立てる。

        明示的な valorContexto 属性 -> 既知の銀行属性（固定順）-> なし。
        """
        if context is None:
            return {}

        explicit = context.get_attribute(BankingAttributes.VALOR_CONTEXTO)
        if isinstance(explicit, str) and explicit.strip():
            return {QUERY_CONTEXT_VALUE: explicit}

        value = _first_non_blank(
            [
                (key, lambda key=key, attr=attr: _key_value(key, context.get_attribute(attr)))
                for key, attr in CONTEXT_VALUE_CANDIDATES
            ]
        )
        if value is None:
            return {}
        return {QUERY_CONTEXT_VALUE: value}

    def fetch(
        self,
        flag_key: str,
        context: EvaluationContext | None,
        *,
        authorization: str | None = None,
    ) -> FetchResult:
        """フラグを 1 件取得する。

        通信エラーは例外ではなく FetchFailure として返す。
        """
        url = f"{self._base_url}/funcionalidades/jornadas/{quote(flag_key, safe='')}/parametros"
        headers = self.build_headers(context, authorization)
        params = self.build_query_params(context)
        logger.debug("fetching feature toggle", flag_key=flag_key, params=params)
        try:
            resp = self._http_client.get(url, headers=headers, params=params)
        except httpx.HTTPError as e:
            logger.warning("feature toggle request failed", flag_key=flag_key, error=str(e))
            return FetchFailure(detail=str(e) or type(e).__name__)

        if resp.status_code == 404:
            return FetchNotFound()
        if resp.status_code >= 400:
            logger.warning(
                "feature toggle request rejected",
                flag_key=flag_key,
                status_code=resp.status_code,
            )
            return FetchFailure(
                detail=f"HTTP {resp.status_code}: {resp.text}",
                status_code=resp.status_code,
            )
        if not resp.content.strip():
            return FetchNotFound()
        try:
            data = resp.json()
        except ValueError as e:
            return FetchFailure(
                detail=f"invalid response body: {e}", status_code=resp.status_code
            )
        if not isinstance(data, dict):
            return FetchFailure(
                detail=f"unexpected response body: {type(data).__name__}",
                status_code=resp.status_code,
            )
        return FetchSuccess(FeatureToggleResponse.from_dict(data))
