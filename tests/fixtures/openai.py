"""OpenAI chat client stand-ins.

Providers receive these objects directly (or via ``client_factory``); the
``OpenAIStubFactory`` replaces the ``OpenAI`` name inside ``exam_sim.core.ai``
through ``monkeypatch`` so ``load_client`` can be exercised offline.
"""

from __future__ import annotations

from dataclasses import dataclass
from types import SimpleNamespace
from typing import Any, Callable, Dict, List, Optional


@dataclass
class Choice:
    content: Optional[str]

    @property
    def message(self) -> SimpleNamespace:
        return SimpleNamespace(content=self.content)


class ChatClientStub:
    """Exposes ``chat.completions.create`` and records each request."""

    def __init__(
        self,
        *responses: str,
        side_effect: Optional[Callable[[Dict[str, Any]], Any]] = None,
    ) -> None:
        self.side_effect = side_effect
        self.calls: List[Dict[str, Any]] = []
        self.responses: List[str] = list(responses)
        self.chat = SimpleNamespace(
            completions=SimpleNamespace(create=self._create_completion)
        )

    def queue_response(self, content: str) -> None:
        self.responses.append(content)

    def _create_completion(self, **kwargs: Any) -> SimpleNamespace:
        self.calls.append(kwargs)
        if self.side_effect:
            result = self.side_effect(kwargs)
            if result is not None:
                return result
        content = self.responses.pop(0) if self.responses else ""
        return SimpleNamespace(choices=[Choice(content)])


class OpenAIStubFactory:
    """Callable used in place of ``openai.OpenAI``."""

    def __init__(self) -> None:
        self.instances: List[ChatClientStub] = []

    def __call__(self, *args: Any, **kwargs: Any) -> ChatClientStub:
        stub = ChatClientStub()
        stub.init_args = args  # type: ignore[attr-defined]
        stub.init_kwargs = kwargs  # type: ignore[attr-defined]
        self.instances.append(stub)
        return stub

    @property
    def last(self) -> Optional[ChatClientStub]:
        return self.instances[-1] if self.instances else None
