# evidex/providers/base.py
"""Provider contract consumed by the extraction engine.

Concrete network adapters live outside this package; the engine only needs
``generate`` and ``generate_structured``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, ClassVar, Literal

from pydantic import Field

from ..core.types import WireModel

OutputChannel = Literal["text", "tool_call"]


class ProviderRequest(WireModel):
    omit_when_none: ClassVar[tuple[str, ...]] = ("schema_", "metadata", "timeout_ms")

    model: str
    prompt: str
    schema_: dict[str, Any] | None = Field(default=None, alias="schema")
    metadata: dict[str, str] | None = None
    timeout_ms: int | None = None


class ProviderRunRecord(WireModel):
    provider: str
    model: str
    latency_ms: float = 0
    retries: int = 0
    request_hash: str


class ProviderResponse(WireModel):
    omit_when_none: ClassVar[tuple[str, ...]] = ("output_channel",)

    text: str
    output_channel: OutputChannel | None = None
    run_record: ProviderRunRecord


class Provider(ABC):
    """A model backend.

    ``generate_structured`` is called instead of ``generate`` when the
    program schema meaningfully constrains the output; backends without a
    structured mode can rely on the default, which falls back to ``generate``.
    """

    name: str = "provider"

    @abstractmethod
    def generate(self, request: ProviderRequest) -> ProviderResponse:
        """Return the raw model output for *request*."""

    def generate_structured(self, request: ProviderRequest) -> ProviderResponse:
        return self.generate(request)
