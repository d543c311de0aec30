"""featuretoggle feature flag client library."""

from .auth import (
    ClientCredentialsTokenProvider,
    StaticTokenProvider,
    TokenProvider,
    format_authorization,
)
from .banking import (
    AccountType,
    BankingAttributes,
    BankingContextBuilder,
    CustomerSegment,
    RiskLevel,
)
from .client import FeatureFlagClient
from .config import (
    FeatureFlagsConfig,
    OAuthClientConfig,
    RestProviderConfig,
    create_client,
    create_provider,
    load_config,
)
from .context import EvaluationContext, EvaluationContextBuilder, HookContext
from .exceptions import (
    ConfigError,
    ConfigErrorCodes,
    EvaluationError,
    FeatureFlagError,
    ProviderNotReadyError,
)
from .hooks import Hook, LoggingHook, MetricsHook
from .http_client import (
    FeatureToggleResponse,
    FetchFailure,
    FetchNotFound,
    FetchResult,
    FetchSuccess,
    RestFeatureToggleClient,
)
from .models import ErrorCode, FlagEvaluation, FlagMetadata, Reason, ValueType
from .provider import FeatureFlagProvider, InMemoryFeatureFlagProvider
from .rest_provider import RestFeatureFlagProvider

__all__ = [
    "AccountType",
    "BankingAttributes",
    "BankingContextBuilder",
    "ClientCredentialsTokenProvider",
    "ConfigError",
    "ConfigErrorCodes",
    "CustomerSegment",
    "ErrorCode",
    "EvaluationContext",
    "EvaluationContextBuilder",
    "EvaluationError",
    "FeatureFlagClient",
    "FeatureFlagError",
    "FeatureFlagProvider",
    "FeatureFlagsConfig",
    "FeatureToggleResponse",
    "FetchFailure",
    "FetchNotFound",
    "FetchResult",
    "FetchSuccess",
    "FlagEvaluation",
    "FlagMetadata",
    "Hook",
    "HookContext",
    "InMemoryFeatureFlagProvider",
    "LoggingHook",
    "MetricsHook",
    "OAuthClientConfig",
    "ProviderNotReadyError",
    "Reason",
    "RestFeatureFlagProvider",
    "RestFeatureToggleClient",
    "RestProviderConfig",
    "RiskLevel",
    "StaticTokenProvider",
    "TokenProvider",
    "ValueType",
    "create_client",
    "create_provider",
    "format_authorization",
    "load_config",
]
