"""
Quiz question generation service.

Questions come from an external generation webhook that reads the educator's
LightRAG documents. When no webhook is configured, or it times out or returns
nothing usable, placeholder sample questions are produced instead so the
educator can still edit and publish the quiz.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional, Dict, Any

import httpx
from json_repair import repair_json

from quizhub.core.config import settings
from quizhub.models.enums import BloomsLevel, Difficulty
from quizhub.services.errors import ExternalServiceError

logger = logging.getLogger(__name__)

OPTION_IDS = "abcdefgh"


@dataclass
class GenerationRequest:
    title: str
    description: Optional[str]
    document_ids: List[int]
    document_metadata: List[Dict[str, Any]]
    question_count: int = 10
    topics: List[str] = field(default_factory=list)
    books: List[str] = field(default_factory=list)
    chapters: List[str] = field(default_factory=list)
    difficulty: str = Difficulty.INTERMEDIATE
    blooms_levels: List[str] = field(default_factory=lambda: [BloomsLevel.KNOWLEDGE])
    time_limit: int = 30

    def to_payload(self) -> Dict[str, Any]:
        return {
            "documentIds": self.document_ids,
            "documentMetadata": self.document_metadata,
            "questionCount": self.question_count,
            "topics": self.topics,
            "books": self.books,
            "chapters": self.chapters,
            "difficulty": self.difficulty,
            "bloomsLevel": self.blooms_levels,
            "timeLimit": self.time_limit,
            "quizTitle": self.title,
            "quizDescription": self.description,
        }


@dataclass
class GeneratedQuestion:
    question_text: str
    options: List[Dict[str, str]]
    correct_answer: str
    explanation: Optional[str]
    difficulty: str
    blooms_level: Optional[str]
    topic: Optional[str]
    book: Optional[str]
    chapter: Optional[str]
    order_index: int


@dataclass
class GenerationResult:
    questions: List[GeneratedQuestion]
    used_fallback: bool
    message: Optional[str] = None


def _parse_body(text: str) -> Any:
    """JSON, repaired with json_repair when the webhook sends something slightly off."""
    cleaned = text.strip()
    if cleaned.startswith("```json"):
        cleaned = cleaned[7:]
    elif cleaned.startswith("```"):
        cleaned = cleaned[3:]
    if cleaned.endswith("```"):
        cleaned = cleaned[:-3]
    cleaned = cleaned.strip()

    try:
        return json.loads(cleaned)
    except json.JSONDecodeError as e:
        logger.warning(f"[Quiz generation] JSON parse failed ({e}), trying json_repair")
        repaired = repair_json(cleaned)
        parsed = json.loads(repaired) if repaired else None
        if parsed in (None, "", {}, []):
            raise ValueError("Webhook response is not valid JSON") from e
        return parsed


def extract_questions(data: Any) -> List[Dict[str, Any]]:
    """Accepts [{"output": {"questions": []}}], {"output": {"questions": []}}, {"questions": []} or a bare list."""
    if isinstance(data, list) and data and isinstance(data[0], dict) \
            and isinstance(data[0].get("output"), dict) and "questions" in data[0]["output"]:
        return list(data[0]["output"]["questions"] or [])
    if isinstance(data, dict):
        output = data.get("output")
        if isinstance(output, dict) and "questions" in output:
            return list(output["questions"] or [])
        if "questions" in data:
            return list(data["questions"] or [])
        return []
    if isinstance(data, list):
        return [item for item in data if isinstance(item, dict)]
    return []


def _normalize_options(raw_options: Any) -> List[Dict[str, str]]:
    if isinstance(raw_options, dict):
        return [{"id": str(key).lower(), "text": str(value)} for key, value in raw_options.items()]
    options = []
    if isinstance(raw_options, list):
        for index, option in enumerate(raw_options):
            if isinstance(option, dict):
                option_id = str(option.get("id") or OPTION_IDS[index % len(OPTION_IDS)]).lower()
                options.append({"id": option_id, "text": str(option.get("text", ""))})
            else:
                options.append({"id": OPTION_IDS[index % len(OPTION_IDS)], "text": str(option)})
    return options


def _resolve_correct_answer(raw: Any, options: List[Dict[str, str]]) -> Optional[str]:
    """Map a letter, option id, index or option text onto an option id."""
    if raw is None:
        return None
    ids = [option["id"] for option in options]
    if isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return ids[raw] if 0 <= raw < len(ids) else None
    text = str(raw).strip()
    if text.lower() in ids:
        return text.lower()
    if text.isdigit() and int(text) < len(ids):
        return ids[int(text)]
    for option in options:
        if option["text"].strip().lower() == text.lower():
            return option["id"]
    return None


def parse_reference(reference: Optional[str]):
    """Split "1 Corinthians 13:4-7 (NIV)" into ("1 Corinthians", "13:4-7")."""
    if not reference:
        return None, None
    parts = reference.strip().split()
    if len(parts) >= 2 and parts[0].isdigit():
        book = f"{parts[0]} {parts[1]}"
        chapter = " ".join(parts[2:])
    else:
        book = parts[0]
        chapter = " ".join(parts[1:])
    chapter = re.sub(r"\(.*\)", "", chapter).strip()
    return book, chapter or None


def normalize_question(raw: Dict[str, Any], index: int, request: GenerationRequest) -> Optional[GeneratedQuestion]:
    text = raw.get("question") or raw.get("questionText") or raw.get("question_text")
    options = _normalize_options(raw.get("options"))
    correct = _resolve_correct_answer(
        raw.get("correct_answer", raw.get("correctAnswer")), options
    )
    if not text or len(options) < 2 or correct is None:
        logger.warning(f"[Quiz generation] skipping malformed question #{index + 1}")
        return None

    blooms = raw.get("bloomsLevel") or raw.get("blooms_level")
    if blooms not in BloomsLevel.ALL:
        blooms = request.blooms_levels[0] if request.blooms_levels else None

    difficulty = raw.get("difficulty") or request.difficulty
    if difficulty == "medium":
        difficulty = Difficulty.INTERMEDIATE
    if difficulty not in Difficulty.ALL:
        difficulty = Difficulty.INTERMEDIATE

    book, chapter = parse_reference(raw.get("reference") or raw.get("biblical_reference"))
    return GeneratedQuestion(
        question_text=str(text),
        options=options,
        correct_answer=correct,
        explanation=raw.get("explanation"),
        difficulty=difficulty,
        blooms_level=blooms,
        topic=raw.get("topic") or raw.get("question_type") or (request.topics[0] if request.topics else None),
        book=raw.get("book") or book or (request.books[0] if request.books else None),
        chapter=raw.get("chapter") or chapter or (request.chapters[0] if request.chapters else None),
        order_index=index,
    )


def sample_questions(request: GenerationRequest) -> List[Dict[str, Any]]:
    subject = request.topics[0] if request.topics else (request.books[0] if request.books else "the source material")
    blooms = request.blooms_levels or [BloomsLevel.KNOWLEDGE]
    note = (
        "This is a sample question created because question generation was unavailable. "
        "Edit it before publishing."
    )
    return [
        {
            "question": f"Sample Question: What is the main theme discussed in {subject}?",
            "options": {
                "A": "The central idea developed throughout the material",
                "B": "A minor detail mentioned once",
                "C": "An unrelated historical event",
                "D": "None of the above",
            },
            "correct_answer": "a",
            "explanation": note,
            "bloomsLevel": blooms[0],
        },
        {
            "question": f"Sample Question: Which statement best summarises a key lesson from {subject}?",
            "options": {
                "A": "Apply the principle to a new situation",
                "B": "Memorise the text without understanding it",
                "C": "Ignore the context of the passage",
                "D": "Assume every detail is unrelated",
            },
            "correct_answer": "a",
            "explanation": note,
            "bloomsLevel": blooms[min(1, len(blooms) - 1)],
        },
        {
            "question": f"Sample Question: How could you apply what you learned from {subject}?",
            "options": {
                "A": "Relate it to a real-world example",
                "B": "Avoid thinking about it",
                "C": "Treat it as purely theoretical",
                "D": "Rely only on outside opinions",
            },
            "correct_answer": "a",
            "explanation": note,
            "bloomsLevel": blooms[-1],
        },
    ]


class QuizGenerator:
    """Calls the generation webhook and normalises whatever comes back."""

    def __init__(
        self,
        webhook_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.webhook_url = webhook_url if webhook_url is not None else settings.QUIZ_GENERATION_WEBHOOK_URL
        self.timeout = timeout or settings.QUIZ_GENERATION_TIMEOUT_SECONDS
        self._transport = transport

    def _normalize_all(self, raw_questions: List[Dict[str, Any]], request: GenerationRequest) -> List[GeneratedQuestion]:
        normalized = []
        for raw in raw_questions:
            question = normalize_question(raw, len(normalized), request)
            if question is not None:
                normalized.append(question)
        return normalized

    def _fallback(self, request: GenerationRequest, reason: str) -> GenerationResult:
        logger.warning(f"[Quiz generation] using sample questions: {reason}")
        return GenerationResult(
            questions=self._normalize_all(sample_questions(request), request),
            used_fallback=True,
            message=(
                "The question generation service was unavailable. Sample questions have been created. "
                "You can edit them in the review page."
            ),
        )

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        if not self.webhook_url:
            return self._fallback(request, "no webhook configured")

        logger.info(
            f"[Quiz generation] calling webhook for '{request.title}' "
            f"({request.question_count} questions, {len(request.document_ids)} documents)"
        )
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(self.webhook_url, json=request.to_payload())
        except httpx.TimeoutException:
            return self._fallback(request, "webhook timed out")
        except httpx.HTTPError as e:
            return self._fallback(request, f"webhook request failed: {e}")

        if response.status_code == 504:
            return self._fallback(request, "gateway timeout (504)")
        if response.status_code == 404:
            raise ExternalServiceError(
                "Webhook endpoint not found (404). Please check the webhook URL configuration."
            )
        if response.status_code == 500:
            raise ExternalServiceError(
                "Webhook server error (500). The webhook service encountered an internal error."
            )
        if response.status_code == 503:
            raise ExternalServiceError(
                "Webhook service unavailable (503). The service may be down or overloaded."
            )
        if 400 <= response.status_code < 500:
            raise ExternalServiceError(
                f"Webhook request error ({response.status_code}): {response.text or response.reason_phrase}"
            )
        if response.status_code >= 400:
            raise ExternalServiceError(
                f"Webhook failed with status {response.status_code}: {response.text or response.reason_phrase}"
            )

        if not response.text or not response.text.strip():
            return self._fallback(request, "empty webhook response")

        try:
            data = _parse_body(response.text)
        except ValueError as e:
            return self._fallback(request, str(e))

        questions = self._normalize_all(extract_questions(data), request)
        if not questions:
            return self._fallback(request, "no usable questions in webhook response")

        logger.info(f"[Quiz generation] received {len(questions)} questions")
        return GenerationResult(questions=questions, used_fallback=False)


_quiz_generator: Optional[QuizGenerator] = None


def get_quiz_generator() -> QuizGenerator:
    global _quiz_generator
    if _quiz_generator is None:
        _quiz_generator = QuizGenerator()
    return _quiz_generator
