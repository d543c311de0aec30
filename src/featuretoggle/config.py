"""設定の読み込みとクライアントの組み立て"""

from __future__ import annotations

import os
import re
from collections.abc import Iterable
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError

from .auth import ClientCredentialsTokenProvider, StaticTokenProvider, TokenProvider
from .client import FeatureFlagClient
from .exceptions import ConfigError, ConfigErrorCodes
from .hooks import Hook
from .http_client import RestFeatureToggleClient
from .rest_provider import RestFeatureFlagProvider


class OAuthClientConfig(BaseModel):
    """OAuth2 Client Credentials 設定。"""

    token_url: str
    client_id: str
    client_secret: str
    scope: str = ""
    timeout_seconds: float = Field(default=10.0, gt=0)


class RestProviderConfig(BaseModel):
    """REST プロバイダー設定。

    static_bearer_token と oauth の両方がある場合は oauth を優先する。
    """

    base_url: str
    static_bearer_token: str | None = None
    timeout_seconds: float = Field(default=5.0, gt=0)
    oauth: OAuthClientConfig | None = None


class FeatureFlagsConfig(BaseModel):
    """featureflags 設定全体。"""

    rest: RestProviderConfig


_ENV_REFERENCE = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")


def _expand_env(value: Any, location: str = "") -> Any:
    """解析済みの値に含まれる ${ENV_VAR} を環境変数で置き換える。

    未設定の環境変数を参照している場合は VALIDATION_ERROR。
    """
    if isinstance(value, dict):
        return {
            key: _expand_env(item, f"{location}.{key}" if location else str(key))
            for key, item in value.items()
        }
    if isinstance(value, list):
        return [_expand_env(item, f"{location}[{i}]") for i, item in enumerate(value)]
    if not isinstance(value, str):
        return value

    def substitute(match: re.Match[str]) -> str:
        name = match.group(1)
        resolved = os.environ.get(name)
        if resolved is None:
            raise ConfigError(
                code=ConfigErrorCodes.VALIDATION,
                message=f"Environment variable {name} is not set (referenced by {location})",
            )
        return resolved

    return _ENV_REFERENCE.sub(substitute, value)


def load_config(path: Path) -> FeatureFlagsConfig:
    """YAML 設定ファイルを読み込んで FeatureFlagsConfig を返す。

    文字列値の ${ENV_VAR} 参照は YAML の解析後に環境変数で展開する。
    トップレベルに featureflags キーがあればその配下を設定として扱う。

    例::

        featureflags:
          rest:
            base_url: https://toggle.internal/feature-toggle
            static_bearer_token: ${FEATURE_TOGGLE_TOKEN}
    """
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(
            code=ConfigErrorCodes.READ_FILE,
            message=f"Failed to read config file: {path}",
            cause=e,
        ) from e
    try:
        data: dict[str, Any] = yaml.safe_load(text) or {}
    except yaml.YAMLError as e:
        raise ConfigError(
            code=ConfigErrorCodes.PARSE_YAML,
            message=f"Failed to parse YAML: {path}",
            cause=e,
        ) from e
    if isinstance(data, dict) and "featureflags" in data:
        data = data["featureflags"] or {}
    data = _expand_env(data)
    try:
        return FeatureFlagsConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(
            code=ConfigErrorCodes.VALIDATION,
            message=f"Config validation failed: {e}",
            cause=e,
        ) from e


def create_token_provider(config: RestProviderConfig) -> TokenProvider | None:
    if config.oauth is not None:
        return ClientCredentialsTokenProvider(
            token_url=config.oauth.token_url,
            client_id=config.oauth.client_id,
            client_secret=config.oauth.client_secret,
            scope=config.oauth.scope,
            timeout_seconds=config.oauth.timeout_seconds,
        )
    if config.static_bearer_token:
        return StaticTokenProvider(config.static_bearer_token)
    return None


def create_provider(config: FeatureFlagsConfig) -> RestFeatureFlagProvider:
    """設定から RestFeatureFlagProvider を組み立てる。"""
    rest = config.rest
    client = RestFeatureToggleClient(
        rest.base_url,
        token_provider=create_token_provider(rest),
        timeout_seconds=rest.timeout_seconds,
    )
    return RestFeatureFlagProvider(client)


def create_client(
    config: FeatureFlagsConfig, hooks: Iterable[Hook] | None = None
) -> FeatureFlagClient:
    return FeatureFlagClient(create_provider(config), hooks=hooks)
