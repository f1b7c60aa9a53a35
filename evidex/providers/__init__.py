"""Provider contract and deterministic doubles."""

from .base import OutputChannel, Provider, ProviderRequest, ProviderResponse, ProviderRunRecord
from .errors import (
    ProviderError,
    ProviderErrorKind,
    classify_provider_status,
    is_transient_provider_error,
)
from .fake import DEFAULT_FAKE_RESPONSE, FakeProvider, ProviderCall, ScriptedProvider
from .request_hash import hash_provider_request

__all__ = [
    "DEFAULT_FAKE_RESPONSE",
    "FakeProvider",
    "OutputChannel",
    "Provider",
    "ProviderCall",
    "ProviderError",
    "ProviderErrorKind",
    "ProviderRequest",
    "ProviderResponse",
    "ProviderRunRecord",
    "ScriptedProvider",
    "classify_provider_status",
    "hash_provider_request",
    "is_transient_provider_error",
]
