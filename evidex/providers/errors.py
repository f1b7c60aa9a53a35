"""Provider failures and their retry classification."""

from __future__ import annotations

from typing import Literal

ProviderErrorKind = Literal["transient", "permanent"]


class ProviderError(Exception):
    """A provider call failed.

    ``kind`` decides retry eligibility only; it says nothing about the JSON
    the provider may or may not have produced.
    """

    def __init__(
        self,
        kind: ProviderErrorKind,
        code: str,
        message: str,
        status: int | None = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.code = code
        self.message = message
        self.status = status

    @property
    def transient(self) -> bool:
        return self.kind == "transient"

    @classmethod
    def from_status(cls, status: int, message: str, code: str | None = None) -> ProviderError:
        return cls(classify_provider_status(status), code or f"http_{status}", message, status)

    def __repr__(self) -> str:
        return f"ProviderError(kind={self.kind!r}, code={self.code!r}, status={self.status!r})"


def classify_provider_status(status: int) -> ProviderErrorKind:
    """408, 429 and 5xx are transient; everything else is permanent."""
    if status in (408, 429) or status >= 500:
        return "transient"
    return "permanent"


def is_transient_provider_error(error: BaseException) -> bool:
    if isinstance(error, ProviderError):
        return error.kind == "transient"
    return getattr(error, "transient", False) is True
