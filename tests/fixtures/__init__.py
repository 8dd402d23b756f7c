"""Shared testing fixtures for the exam_sim test suite."""

from .openai import ChatClientStub, OpenAIStubFactory  # noqa: F401
from .providers import FakeQuestionProvider, make_questions  # noqa: F401
from .scheduler import FakeScheduler, FakeTimer  # noqa: F401

__all__ = [
    "ChatClientStub",
    "FakeQuestionProvider",
    "FakeScheduler",
    "FakeTimer",
    "OpenAIStubFactory",
    "make_questions",
]
