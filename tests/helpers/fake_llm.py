"""Test-only fake completion callables.

They never call external services and record every prompt so tests can
assert on what each component asked for. Each one matches the signature of
`novah.ai_engine.complete`.
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, field
from typing import Any, Callable


@dataclass
class CompleteCall:
    prompt: str
    kwargs: dict[str, Any]


@dataclass
class ScriptedLLM:
    """Returns scripted responses in order, repeating the last one.

    A response may be a string, a JSON-serialisable object (dumped), an
    exception instance (raised), or a callable taking the prompt.
    """

    responses: list[Any] = field(default_factory=list)
    calls: list[CompleteCall] = field(default_factory=list)

    async def __call__(self, prompt: str, **kwargs: Any) -> str:
        self.calls.append(CompleteCall(prompt=prompt, kwargs=kwargs))
        if not self.responses:
            raise RuntimeError("ScriptedLLM has no responses")
        index = min(len(self.calls) - 1, len(self.responses) - 1)
        response = self.responses[index]
        if isinstance(response, BaseException):
            raise response
        if callable(response):
            response = response(prompt)
        if isinstance(response, str):
            return response
        return json.dumps(response)

    @property
    def prompts(self) -> list[str]:
        return [call.prompt for call in self.calls]


class FailingLLM:
    """Every call raises, the way `complete` does when no provider answers."""

    def __init__(self, error: BaseException | None = None) -> None:
        self._error = error or RuntimeError("provider unavailable")
        self.calls: list[CompleteCall] = []

    async def __call__(self, prompt: str, **kwargs: Any) -> str:
        self.calls.append(CompleteCall(prompt=prompt, kwargs=kwargs))
        raise self._error


def routed(routes: dict[str, Any], default: Any = "{}") -> Callable[[str], Any]:
    """Pick a response by the first marker found in the prompt."""

    def _pick(prompt: str) -> Any:
        for marker, response in routes.items():
            if marker in prompt:
                return response(prompt) if callable(response) else response
        return default

    return _pick


class ConcurrencyRecordingLLM:
    """Fails every call, recording the peak number of in-flight calls whose
    prompt contains `marker`."""

    def __init__(self, marker: str, delay: float = 0.01) -> None:
        self.marker = marker
        self.delay = delay
        self.active = 0
        self.peak = 0

    async def __call__(self, prompt: str, **kwargs: Any) -> str:
        if self.marker in prompt:
            self.active += 1
            self.peak = max(self.peak, self.active)
            try:
                await asyncio.sleep(self.delay)
            finally:
                self.active -= 1
        raise RuntimeError("provider unavailable")
