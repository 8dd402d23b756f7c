from ._main import build_arg_parser, build_provider, find_result
from .clock import Scheduler, SessionClock, TimerHandle
from .config import ConfigError, ExamConfig, load_config
from .history import (
    HistoryStore,
    JsonFileStore,
    MemoryStore,
    StorageError,
)
from .models import (
    DEFAULT_GRADE,
    DEFAULT_TOPIC,
    GRADE_LEVELS,
    ExamResult,
    Question,
    SessionConfig,
    SetupError,
)
from .provider import (
    JsonlQuestionProvider,
    MalformedResponse,
    OpenAIQuestionProvider,
    ProviderFailure,
    QuestionProvider,
    QuestionProviderError,
)
from .review import build_review, is_passing, performance_label
from .session import (
    EngineSettings,
    ExamEngine,
    ExamPhase,
    ExamSession,
    SessionError,
    TransitionError,
)
from .view.app import ExamApp, TextualScheduler

__all__ = [
    "build_arg_parser",
    "build_provider",
    "find_result",
    "Scheduler",
    "SessionClock",
    "TimerHandle",
    "ConfigError",
    "ExamConfig",
    "load_config",
    "HistoryStore",
    "JsonFileStore",
    "MemoryStore",
    "StorageError",
    "DEFAULT_GRADE",
    "DEFAULT_TOPIC",
    "GRADE_LEVELS",
    "ExamResult",
    "Question",
    "SessionConfig",
    "SetupError",
    "JsonlQuestionProvider",
    "MalformedResponse",
    "OpenAIQuestionProvider",
    "ProviderFailure",
    "QuestionProvider",
    "QuestionProviderError",
    "build_review",
    "is_passing",
    "performance_label",
    "EngineSettings",
    "ExamEngine",
    "ExamPhase",
    "ExamSession",
    "SessionError",
    "TransitionError",
    "ExamApp",
    "TextualScheduler",
]
