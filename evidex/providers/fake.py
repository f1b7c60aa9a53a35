"""Deterministic provider doubles for tests, replays and offline runs."""

from __future__ import annotations

import threading
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Literal, Union

from .base import OutputChannel, Provider, ProviderRequest, ProviderResponse, ProviderRunRecord
from .errors import ProviderError
from .request_hash import hash_provider_request

DEFAULT_FAKE_RESPONSE = '{"extractions":[]}'

CallMethod = Literal["generate", "generate_structured"]


@dataclass(frozen=True)
class ProviderCall:
    method: CallMethod
    request: ProviderRequest
    request_hash: str


class FakeProvider(Provider):
    """Answers from a table keyed by request hash.

    Structured calls look in ``structured_responses`` first and then fall back
    to ``responses``; unmatched requests get ``default_response``.
    """

    name = "fake"

    def __init__(
        self,
        responses: Mapping[str, str] | None = None,
        *,
        structured_responses: Mapping[str, str] | None = None,
        default_response: str = DEFAULT_FAKE_RESPONSE,
        latency_ms: float = 0,
        output_channel: OutputChannel | None = None,
    ) -> None:
        self._responses = dict(responses or {})
        self._structured = dict(structured_responses or {})
        self.default_response = default_response
        self.latency_ms = latency_ms
        self.output_channel = output_channel
        self.calls: list[ProviderCall] = []
        self._lock = threading.Lock()

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, str]) -> FakeProvider:
        """Build a replay provider; the ``"default"`` key sets the fallback."""
        responses = {key: value for key, value in mapping.items() if key != "default"}
        default = mapping.get("default", DEFAULT_FAKE_RESPONSE)
        return cls(responses, default_response=default)

    def set_response(self, request_hash: str, response: str, *, structured: bool = False) -> None:
        with self._lock:
            (self._structured if structured else self._responses)[request_hash] = response

    def _answer(self, method: CallMethod, request: ProviderRequest) -> ProviderResponse:
        request_hash = hash_provider_request(request)
        with self._lock:
            self.calls.append(ProviderCall(method, request, request_hash))
            text = None
            if method == "generate_structured":
                text = self._structured.get(request_hash)
            if text is None:
                text = self._responses.get(request_hash, self.default_response)

        return ProviderResponse(
            text=text,
            output_channel=self.output_channel,
            run_record=ProviderRunRecord(
                provider=self.name,
                model=request.model,
                latency_ms=self.latency_ms,
                retries=0,
                request_hash=request_hash,
            ),
        )

    def generate(self, request: ProviderRequest) -> ProviderResponse:
        return self._answer("generate", request)

    def generate_structured(self, request: ProviderRequest) -> ProviderResponse:
        return self._answer("generate_structured", request)


ScriptStep = Union[str, ProviderResponse, BaseException]


class ScriptedProvider(Provider):
    """Replays *script* in call order, one step per call.

    A string step becomes the response text, an exception step is raised.
    Once the script is exhausted every call raises a permanent
    :class:`ProviderError`.
    """

    name = "scripted"

    def __init__(self, script: Iterable[ScriptStep]) -> None:
        self._script = list(script)
        self._position = 0
        self.calls: list[ProviderCall] = []
        self._lock = threading.Lock()

    @property
    def remaining(self) -> int:
        return len(self._script) - self._position

    def _next(self, method: CallMethod, request: ProviderRequest) -> ProviderResponse:
        request_hash = hash_provider_request(request)
        with self._lock:
            self.calls.append(ProviderCall(method, request, request_hash))
            if self._position >= len(self._script):
                raise ProviderError("permanent", "script_exhausted", "Scripted provider has no responses left.")
            step = self._script[self._position]
            self._position += 1

        if isinstance(step, BaseException):
            raise step
        if isinstance(step, ProviderResponse):
            return step
        return ProviderResponse(
            text=step,
            run_record=ProviderRunRecord(
                provider=self.name,
                model=request.model,
                request_hash=request_hash,
            ),
        )

    def generate(self, request: ProviderRequest) -> ProviderResponse:
        return self._next("generate", request)

    def generate_structured(self, request: ProviderRequest) -> ProviderResponse:
        return self._next("generate_structured", request)
