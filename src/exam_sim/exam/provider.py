import json
import logging
import random
import re

from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence, Tuple

from ..core import load_client
from .models import Question

__all__ = [
    "QuestionProviderError",
    "ProviderFailure",
    "MalformedResponse",
    "QuestionProvider",
    "OpenAIQuestionProvider",
    "JsonlQuestionProvider",
    "build_exam_prompts",
    "parse_questions",
    "read_jsonl",
]


class QuestionProviderError(RuntimeError):
    """Base class for question fetch failures."""


class ProviderFailure(QuestionProviderError):
    """The provider call itself failed (network, auth, missing bank...)."""


class MalformedResponse(QuestionProviderError):
    """The provider answered, but not with a well-formed question set."""


class QuestionProvider(Protocol):
    def fetch_questions(self, topic: str, grade: str) -> List[Question]: ...


def build_exam_prompts(topic: str, grade: str, count: int) -> Tuple[str, str]:
    sys_prompt = (
        f"You are a professional academic examiner for a student in {grade}."
    )
    schema_line = (
        '[{"question": str, "options": [str, str, str, str], '
        '"correctAnswer": str, "explanation": str}]\n'
    )
    instructions = (
        "Critical instructions:\n"
        f"1. Difficulty: depth and complexity must strictly match the {grade} "
        "level.\n"
        "2. Tone: professional and challenging but appropriate for this "
        "age/grade.\n"
        "3. Format: multiple choice with exactly 4 distinct options; "
        "correctAnswer must repeat one option verbatim.\n"
        f"4. Focus on core curriculum concepts relevant to {topic} for this "
        "grade."
    )
    user_prompt = (
        f"Generate a {count}-question curriculum-standard exam on the topic: "
        f'"{topic}".\n\n'
        "Output only a JSON array matching this schema:\n"
        f"{schema_line}\n"
        f"{instructions}"
    )
    return sys_prompt, user_prompt


def _extract_json_array(content: str) -> List[Any]:
    if not content:
        raise MalformedResponse("provider returned an empty response")
    fenced = re.search(r"```(?:json)?\s*(.+?)```", content, re.DOTALL)
    payload = fenced.group(1) if fenced else content
    try:
        data = json.loads(payload)
    except json.JSONDecodeError as exc:
        raise MalformedResponse(f"response is not valid JSON: {exc}") from exc
    if isinstance(data, dict):
        # Some models wrap the array: {"questions": [...]}
        for value in data.values():
            if isinstance(value, list):
                return value
    if not isinstance(data, list):
        raise MalformedResponse("response must be a JSON array of questions")
    return data


def _first(rec: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in rec:
            return rec[key]
    return None


def _resolve_answer(raw_answer: Any, options: List[str]) -> str:
    """Map a letter ("B"), index (1) or verbatim text to the option text."""
    if isinstance(raw_answer, bool):
        return ""
    if isinstance(raw_answer, int) and 0 <= raw_answer < len(options):
        return options[raw_answer]
    if not isinstance(raw_answer, str):
        return ""
    candidate = raw_answer.strip()
    if candidate in options:
        return candidate
    letter = candidate.rstrip(").").upper()
    if len(letter) == 1 and "A" <= letter <= chr(ord("A") + len(options) - 1):
        return options[ord(letter) - ord("A")]
    for option in options:
        if candidate.lower() == option.lower():
            return option
    return candidate


def _option_texts(raw_options: Any) -> List[str]:
    if not isinstance(raw_options, list):
        raise MalformedResponse("options must be a list")
    texts: List[str] = []
    for item in raw_options:
        if isinstance(item, dict):
            texts.append(str(item.get("text", "")).strip())
        else:
            texts.append(str(item).strip())
    return texts


def parse_questions(
    records: Sequence[Any], *, limit: Optional[int] = None
) -> List[Question]:
    """Validate raw records into questions.

    All-or-nothing: a single invalid record raises ``MalformedResponse``.
    Records beyond ``limit`` are dropped; fewer than ``limit`` is allowed.
    """
    if not records:
        raise MalformedResponse("provider returned no questions")
    selected = list(records[:limit] if limit else records)
    questions: List[Question] = []
    for position, rec in enumerate(selected, start=1):
        if not isinstance(rec, dict):
            raise MalformedResponse(f"question {position} is not an object")
        options = _option_texts(_first(rec, "options", "choices"))
        answer = _resolve_answer(
            _first(rec, "correctAnswer", "correct_answer", "answer"), options
        )
        try:
            questions.append(
                Question(
                    text=str(_first(rec, "question", "stem", "text") or "").strip(),
                    options=tuple(options),
                    correct_option=answer,
                    explanation=str(rec.get("explanation") or "").strip(),
                )
            )
        except ValueError as exc:
            raise MalformedResponse(f"question {position}: {exc}") from exc
    return questions


class OpenAIQuestionProvider:
    """Generate grade-calibrated exams through the OpenAI chat API."""

    def __init__(
        self,
        client: object = None,
        *,
        count: int = 5,
        model: str = "gpt-4o-mini",
        temperature: float = 0.4,
        max_tokens: int = 2000,
        client_factory: Optional[Callable[[], object]] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        if count <= 0:
            raise ValueError("count must be positive")
        self._client = client
        self._client_factory = client_factory or load_client
        self.count = count
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self._logger = logger or logging.getLogger(__name__)

    def _ensure_client(self) -> object:
        if self._client is None:
            try:
                self._client = self._client_factory()
            except RuntimeError as exc:
                raise ProviderFailure(str(exc)) from exc
        return self._client

    def _chat_completion_content(self, system_prompt: str, user_prompt: str) -> str:
        client = self._ensure_client()
        try:
            resp = client.chat.completions.create(  # type: ignore[attr-defined]
                model=self.model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            )
        except Exception as exc:
            raise ProviderFailure(f"question generation failed: {exc}") from exc
        try:
            raw_content = resp.choices[0].message.content  # type: ignore[index]
        except (AttributeError, IndexError, TypeError) as exc:
            raise MalformedResponse("unexpected completion payload") from exc
        return (raw_content or "").strip()

    def fetch_questions(self, topic: str, grade: str) -> List[Question]:
        sys_prompt, user_prompt = build_exam_prompts(topic, grade, self.count)
        self._logger.debug(
            "Requesting exam questions",
            extra={"topic": topic, "grade": grade, "model": self.model},
        )
        content = self._chat_completion_content(sys_prompt, user_prompt)
        questions = parse_questions(_extract_json_array(content), limit=self.count)
        if len(questions) < self.count:
            self._logger.warning(
                "Provider returned fewer questions than requested",
                extra={"requested": self.count, "received": len(questions)},
            )
        return questions


def read_jsonl(path: Path) -> List[dict]:
    data: List[dict] = []
    with Path(path).open("r", encoding="utf-8") as fh:
        for line in fh:
            line = line.strip()
            if not line:
                continue
            data.append(json.loads(line))
    return data


class JsonlQuestionProvider:
    """Serve exams from a local JSON Lines bank, one question per line.

    Lines may carry optional ``topic`` and ``grade`` fields; matching lines
    are preferred, falling back to the whole bank when nothing matches.
    Deterministic when ``seed`` is provided.
    """

    def __init__(
        self,
        path: Path,
        *,
        count: int = 5,
        seed: Optional[int] = None,
    ) -> None:
        self.path = Path(path)
        self.count = count
        self._rng = random.Random(seed)

    def _load(self) -> List[dict]:
        try:
            bank = read_jsonl(self.path)
        except OSError as exc:
            raise ProviderFailure(f"question bank unavailable: {self.path}") from exc
        except json.JSONDecodeError as exc:
            raise MalformedResponse(f"question bank is not JSONL: {exc}") from exc
        return bank

    def fetch_questions(self, topic: str, grade: str) -> List[Question]:
        bank = self._load()
        wanted_topic = topic.strip().lower()

        def matches(rec: dict, field: str, wanted: str) -> bool:
            value = rec.get(field) if isinstance(rec, dict) else None
            return value is None or str(value).strip().lower() == wanted

        pool = [
            rec for rec in bank
            if matches(rec, "topic", wanted_topic)
            and matches(rec, "grade", grade.strip().lower())
        ]
        if not pool:
            pool = list(bank)
        picked = self._rng.sample(pool, k=min(self.count, len(pool)))
        return parse_questions(picked, limit=self.count)
