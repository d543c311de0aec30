"""RestFeatureToggleClient のユニットテスト（respx モック）"""

import httpx
import respx
from featuretoggle import (
    BankingContextBuilder,
    EvaluationContext,
    FetchFailure,
    FetchNotFound,
    FetchSuccess,
    RestFeatureToggleClient,
    StaticTokenProvider,
)

BASE_URL = "http://toggle.test/feature-toggle"
FLAG_URL = f"{BASE_URL}/funcionalidades/jornadas/new-feature/parametros"


def make_client(token: str | None = None) -> RestFeatureToggleClient:
    token_provider = StaticTokenProvider(token) if token is not None else None
    return RestFeatureToggleClient(BASE_URL, token_provider=token_provider)


def ctx(**attributes: object) -> EvaluationContext:
    return EvaluationContext(attributes=attributes)


class _FailingTokenProvider:
    def get_token(self) -> str | None:
        raise RuntimeError("vault unavailable")


def test_trailing_slash_is_removed() -> None:
    """base_url 末尾のスラッシュが除去されること。"""
    client = RestFeatureToggleClient(f"{BASE_URL}/")
    assert client.base_url == BASE_URL


def test_explicit_authorization_used_verbatim() -> None:
    """明示的な Authorization は TokenProvider があってもそのまま使うこと。"""
    client = make_client(token="from-provider")
    headers = client.build_headers(None, authorization="Basic abc")
    assert headers["Authorization"] == "Basic abc"
    assert headers["Accept"] == "application/json"


def test_blank_authorization_falls_back_to_token_provider() -> None:
    """空白だけの Authorization は無視して TokenProvider を使うこと。"""
    client = make_client(token="tok123")
    headers = client.build_headers(None, authorization="   ")
    assert headers["Authorization"] == "Bearer tok123"


def test_token_with_scheme_is_not_prefixed_twice() -> None:
    """スキーム付きのトークンには Bearer を付け直さないこと。"""
    client = make_client(token="Bearer tok123")
    assert client.build_headers(None)["Authorization"] == "Bearer tok123"


def test_no_token_sends_no_authorization() -> None:
    """トークンがない場合は Authorization を送らないこと。"""
    assert "Authorization" not in make_client().build_headers(None)
    assert "Authorization" not in make_client(token="  ").build_headers(None)


def test_failing_token_provider_sends_no_authorization() -> None:
    """TokenProvider が例外を送出しても Authorization なしで続行すること。"""
    client = RestFeatureToggleClient(BASE_URL, token_provider=_FailingTokenProvider())
    assert "Authorization" not in client.build_headers(None)


def test_channel_header_only_when_present() -> None:
    """canal 属性がある場合のみ x-type-value-canal を設定すること。"""
    client = make_client()
    assert client.build_headers(ctx(canal="mobile"))["x-type-value-canal"] == "mobile"
    assert "x-type-value-canal" not in client.build_headers(ctx(agencia="100"))
    assert "x-type-value-canal" not in client.build_headers(None)


def test_explicit_context_value_wins() -> None:
    """明示的な valorContexto 属性が既知の属性より優先されること。"""
    params = make_client().build_query_params(
        ctx(valorContexto="produto=cartao", agencia="100", canal="app")
    )
    assert params == {"valorContexto": "produto=cartao"}


def test_first_known_attribute_in_priority_order() -> None:
    """既知の属性は固定の優先順で最初の空でない値を使うこと。"""
    client = make_client()
    assert client.build_query_params(ctx(canal="app", codigoAgencia="0001")) == {
        "valorContexto": "codigoAgencia=0001"
    }
    assert client.build_query_params(ctx(agencia="  ", canal="app")) == {
        "valorContexto": "canal=app"
    }
    assert client.build_query_params(ctx(segmentoCliente="premium")) == {
        "valorContexto": "segmentoCliente=premium"
    }


def test_numeric_and_boolean_attributes_are_rendered() -> None:
    """数値・真偽値の属性も key=value として送ること。"""
    client = make_client()
    assert client.build_query_params(ctx(agencia=100)) == {"valorContexto": "agencia=100"}
    assert client.build_query_params(ctx(canal=True)) == {"valorContexto": "canal=true"}


def test_blank_explicit_context_value_is_ignored() -> None:
    """空の valorContexto は無視して既知の属性を使うこと。"""
    params = make_client().build_query_params(ctx(valorContexto=" ", agencia="100"))
    assert params == {"valorContexto": "agencia=100"}


def test_no_known_attributes_sends_no_query() -> None:
    """既知の属性がない場合はクエリを送らないこと。"""
    client = make_client()
    assert client.build_query_params(ctx(plano="gold")) == {}
    assert client.build_query_params(None) == {}


@respx.mock
def test_fetch_success() -> None:
    """200 レスポンスを FetchSuccess として返すこと。"""
    route = respx.get(FLAG_URL).mock(
        return_value=httpx.Response(
            200,
            json={
                "flagkey": "new-feature",
                "value": "true",
                "reason": "TARGETING_MATCH",
                "variant": "on",
            },
        )
    )
    result = make_client(token="tok").fetch("new-feature", ctx(agencia="100", canal="app"))
    assert isinstance(result, FetchSuccess)
    assert result.response.value == "true"
    assert result.response.reason == "TARGETING_MATCH"
    assert not result.response.has_remote_error

    request = route.calls.last.request
    assert request.headers["Authorization"] == "Bearer tok"
    assert request.headers["Accept"] == "application/json"
    assert request.headers["x-type-value-canal"] == "app"
    assert request.url.params["valorContexto"] == "agencia=100"


@respx.mock
def test_fetch_without_context_sends_no_query() -> None:
    """コンテキストがない場合はクエリなしで送ること。"""
    route = respx.get(FLAG_URL).mock(
        return_value=httpx.Response(200, json={"flagkey": "new-feature", "value": "x"})
    )
    make_client().fetch("new-feature", None)
    assert route.calls.last.request.url.query == b""


@respx.mock
def test_flag_key_is_percent_encoded() -> None:
    """フラグキーは 1 つのパスセグメントとしてエンコードされること。"""
    route = respx.get(url__startswith=BASE_URL).mock(
        return_value=httpx.Response(200, json={"value": "1"})
    )
    make_client().fetch("promo/black friday", None)
    raw_path = route.calls.last.request.url.raw_path
    assert b"/funcionalidades/jornadas/promo%2Fblack%20friday/parametros" in raw_path


@respx.mock
def test_fetch_not_found() -> None:
    """404 は FetchNotFound になること。"""
    respx.get(FLAG_URL).mock(return_value=httpx.Response(404, text="Not found"))
    assert isinstance(make_client().fetch("new-feature", None), FetchNotFound)


@respx.mock
def test_fetch_empty_body_is_not_found() -> None:
    """本文が空の 200 は FetchNotFound になること。"""
    respx.get(FLAG_URL).mock(return_value=httpx.Response(200))
    assert isinstance(make_client().fetch("new-feature", None), FetchNotFound)


@respx.mock
def test_fetch_unauthorized_is_failure() -> None:
    """401 は FetchFailure になること。"""
    respx.get(FLAG_URL).mock(return_value=httpx.Response(401, text="Unauthorized"))
    result = make_client().fetch("new-feature", None)
    assert isinstance(result, FetchFailure)
    assert result.status_code == 401
    assert "401" in result.detail


@respx.mock
def test_fetch_server_error_is_failure() -> None:
    """500 は FetchFailure になること。"""
    respx.get(FLAG_URL).mock(return_value=httpx.Response(500, text="Internal Server Error"))
    result = make_client().fetch("new-feature", None)
    assert isinstance(result, FetchFailure)
    assert result.status_code == 500


@respx.mock
def test_fetch_invalid_json_is_failure() -> None:
    """JSON でない本文は FetchFailure になること。"""
    respx.get(FLAG_URL).mock(return_value=httpx.Response(200, text="<html>"))
    result = make_client().fetch("new-feature", None)
    assert isinstance(result, FetchFailure)


@respx.mock
def test_fetch_non_object_json_is_failure() -> None:
    """オブジェクトでない JSON は FetchFailure になること。"""
    respx.get(FLAG_URL).mock(return_value=httpx.Response(200, json=["true"]))
    assert isinstance(make_client().fetch("new-feature", None), FetchFailure)


def test_fetch_connection_error_is_failure() -> None:
    """接続エラーは FetchFailure になり、元のメッセージを保持すること。"""
    with respx.mock:
        respx.get(FLAG_URL).mock(side_effect=httpx.ConnectError("Connection refused"))
        result = make_client().fetch("new-feature", None)
    assert isinstance(result, FetchFailure)
    assert result.status_code is None
    assert "Connection refused" in result.detail


def test_fetch_timeout_is_failure() -> None:
    """タイムアウトは FetchFailure になること。"""
    with respx.mock:
        respx.get(FLAG_URL).mock(side_effect=httpx.ReadTimeout("timed out"))
        result = make_client().fetch("new-feature", None)
    assert isinstance(result, FetchFailure)


@respx.mock
def test_non_string_value_is_normalised_to_text() -> None:
    """文字列以外の value は JSON テキストとして扱うこと。"""
    respx.get(FLAG_URL).mock(
        return_value=httpx.Response(200, json={"value": {"a": 1}, "flagkey": "new-feature"})
    )
    result = make_client().fetch("new-feature", None)
    assert isinstance(result, FetchSuccess)
    assert result.response.value == '{"a": 1}'


def test_close_marks_client_closed() -> None:
    """close 後は closed が True になること。"""
    with make_client() as client:
        assert not client.closed
    assert client.closed


@respx.mock
def test_non_string_fields_are_normalised_to_text() -> None:
    """数値で返ってきた errorCode などは文字列として扱うこと。"""
    respx.get(FLAG_URL).mock(
        return_value=httpx.Response(
            200, json={"value": "x", "errorCode": 500, "reason": 7, "variant": None}
        )
    )
    result = make_client().fetch("new-feature", None)
    assert isinstance(result, FetchSuccess)
    assert result.response.error_code == "500"
    assert result.response.reason == "7"
    assert result.response.variant is None
    assert result.response.has_remote_error


def test_banking_context_value_is_sent_verbatim() -> None:
    """BankingContextBuilder の context_value がそのままクエリになること。"""
    context = BankingContextBuilder().branch("100").context_value("produto=pix").build()
    assert make_client().build_query_params(context) == {"valorContexto": "produto=pix"}


class _ClosableTokenProvider:
    def __init__(self) -> None:
        self.closed = False

    def get_token(self) -> str | None:
        return "tok"

    def close(self) -> None:
        self.closed = True


def test_close_also_closes_token_provider() -> None:
    """close は token_provider も閉じること。"""
    token_provider = _ClosableTokenProvider()
    client = RestFeatureToggleClient(BASE_URL, token_provider=token_provider)
    client.close()
    assert token_provider.closed


def test_close_without_closable_token_provider() -> None:
    """close を持たない token_provider でも close できること。"""
    client = make_client(token="tok")
    client.close()
    assert client.closed
