"""Webhook question generation, LightRAG client and knowledge-graph validation."""

import asyncio
import json

import httpx
import pytest

from conftest import lightrag_handler
from quizhub.services.errors import ConfigurationError, ExternalServiceError
from quizhub.services.lightrag_service import LightRAGService
from quizhub.services.question_validator import QuestionValidator, QuestionToValidate, validation_summary
from quizhub.services.quiz_generator import (
    GenerationRequest,
    QuizGenerator,
    _parse_body,
    extract_questions,
    normalize_question,
    parse_reference,
)

WEBHOOK = "http://generator.test/webhook/quiz"


def _request(**fields):
    return GenerationRequest(
        title="Photosynthesis",
        description=None,
        document_ids=[1],
        document_metadata=[{"id": 1, "filename": "cells.pdf"}],
        question_count=fields.pop("question_count", 2),
        **fields,
    )


def _generate(handler, request=None):
    generator = QuizGenerator(webhook_url=WEBHOOK, transport=httpx.MockTransport(handler))
    return asyncio.run(generator.generate(request or _request()))


GOOD_PAYLOAD = [{
    "output": {
        "questions": [
            {
                "question": "Where does the Calvin cycle take place?",
                "options": {"A": "Stroma", "B": "Thylakoid membrane", "C": "Nucleus", "D": "Cytoplasm"},
                "correct_answer": "A",
                "explanation": "Carbon fixation happens in the stroma.",
                "difficulty": "medium",
                "bloomsLevel": "comprehension",
            },
            {
                "question": "Which pigment absorbs light?",
                "options": ["Chlorophyll", "Keratin"],
                "correct_answer": "Chlorophyll",
            },
            {"question": "Broken question without options"},
        ]
    }
}]


def test_parse_body_strips_fences_and_repairs() -> None:
    assert _parse_body('```json\n{"questions": []}\n```') == {"questions": []}
    repaired = _parse_body('{"questions": [{"question": "Q", "options": ["x", "y"], "correct_answer": "x",}]}')
    assert repaired["questions"][0]["correct_answer"] == "x"


def test_extract_questions_accepts_every_envelope() -> None:
    question = {"question": "Q"}
    assert extract_questions([{"output": {"questions": [question]}}]) == [question]
    assert extract_questions({"output": {"questions": [question]}}) == [question]
    assert extract_questions({"questions": [question]}) == [question]
    assert extract_questions([question, "noise"]) == [question]
    assert extract_questions({"unrelated": True}) == []


def test_normalize_question_resolves_answers() -> None:
    request = _request(topics=["Light reactions"])
    by_index = normalize_question({"question": "Q", "options": ["x", "y", "z"], "correct_answer": 2}, 0, request)
    assert by_index.correct_answer == "c"
    assert by_index.topic == "Light reactions"

    by_digit = normalize_question({"question": "Q", "options": ["x", "y"], "correctAnswer": "1"}, 0, request)
    assert by_digit.correct_answer == "b"

    by_id = normalize_question(
        {"question": "Q", "options": [{"id": "B", "text": "x"}, {"id": "C", "text": "y"}], "correct_answer": "c"},
        0, request,
    )
    assert [o["id"] for o in by_id.options] == ["b", "c"]
    assert by_id.correct_answer == "c"

    assert normalize_question({"question": "Q", "options": ["x", "y"], "correct_answer": "z"}, 0, request) is None
    assert normalize_question({"question": "Q", "options": ["x"], "correct_answer": "x"}, 0, request) is None


def test_parse_reference() -> None:
    assert parse_reference("1 Corinthians 13:4-7 (NIV)") == ("1 Corinthians", "13:4-7")
    assert parse_reference("John 3:16") == ("John", "3:16")
    assert parse_reference(None) == (None, None)


def test_generate_normalizes_webhook_questions() -> None:
    seen = {}

    def handler(request):
        seen.update(json.loads(request.content))
        return httpx.Response(200, json=GOOD_PAYLOAD)

    result = _generate(handler)
    assert not result.used_fallback
    assert seen["quizTitle"] == "Photosynthesis"
    assert seen["questionCount"] == 2
    assert len(result.questions) == 2
    first, second = result.questions
    assert first.correct_answer == "a"
    assert first.difficulty == "intermediate"
    assert first.blooms_level == "comprehension"
    assert second.correct_answer == "a"
    assert second.order_index == 1


@pytest.mark.parametrize("handler", [
    lambda request: httpx.Response(504),
    lambda request: httpx.Response(200, text="   "),
    lambda request: httpx.Response(200, text="definitely not json"),
    lambda request: httpx.Response(200, json={"questions": []}),
])
def test_generate_falls_back_to_samples(handler) -> None:
    result = _generate(handler)
    assert result.used_fallback
    assert len(result.questions) == 3
    assert all(q.question_text.startswith("Sample Question") for q in result.questions)
    assert "Sample questions have been created" in result.message


def test_generate_falls_back_on_timeout_and_missing_url() -> None:
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    assert _generate(handler).used_fallback
    no_url = QuizGenerator(webhook_url="")
    assert asyncio.run(no_url.generate(_request())).used_fallback


@pytest.mark.parametrize("status_code,fragment", [
    (404, "not found (404)"),
    (500, "server error (500)"),
    (503, "unavailable (503)"),
    (422, "request error (422)"),
])
def test_generate_raises_on_webhook_errors(status_code, fragment) -> None:
    with pytest.raises(ExternalServiceError) as excinfo:
        _generate(lambda request: httpx.Response(status_code, text="nope"))
    assert fragment in excinfo.value.message


def test_extract_entities_from_text() -> None:
    entities = LightRAGService.extract_entities_from_text(
        'Glycolysis splits glucose in the "cell cytoplasm" (without oxygen) as Krebs Cycle waits.'
    )
    assert "Glycolysis" in entities
    assert "cell cytoplasm" in entities
    assert "without oxygen" in entities
    assert "Krebs Cycle" in entities
    assert LightRAGService.extract_entities_from_text('"of" and (to)') == []
    assert LightRAGService.extract_entities_from_text("") == []


def test_track_status_reports_permanent_id(lightrag) -> None:
    status = asyncio.run(lightrag.check_track_status("upload_123"))
    assert status.processed
    assert status.status == "ready"
    assert status.document_id == "doc-abc"


def test_track_status_not_found() -> None:
    service = LightRAGService(
        api_key="k", transport=httpx.MockTransport(lambda request: httpx.Response(404))
    )
    status = asyncio.run(service.check_track_status("missing"))
    assert not status.exists
    assert status.status == "not_found"


def test_missing_api_key_is_a_configuration_error() -> None:
    service = LightRAGService(api_key="", transport=httpx.MockTransport(lightrag_handler))
    with pytest.raises(ConfigurationError):
        asyncio.run(service.upload_document("a.txt", b"x" * 200))


def _question(**fields):
    return QuestionToValidate(
        id=fields.pop("id", 1),
        question_text=fields.pop("question_text", "Which Organelle produces energy for the cell?"),
        options=fields.pop("options", [
            {"id": "a", "text": "Mitochondria"},
            {"id": "b", "text": "Ribosome"},
        ]),
        correct_answer=fields.pop("correct_answer", "a"),
        **fields,
    )


def test_validate_question_with_known_entities(lightrag) -> None:
    result = asyncio.run(QuestionValidator(lightrag).validate_question(_question()))
    assert result.is_valid
    assert result.score == 100
    assert "Mitochondria" in result.valid_entities


def test_validate_question_without_entities(lightrag) -> None:
    question = _question(
        question_text="what is it?",
        options=[{"id": "a", "text": "yes"}, {"id": "b", "text": "no"}],
    )
    result = asyncio.run(QuestionValidator(lightrag).validate_question(question))
    assert not result.is_valid
    assert result.issues[0].type == "no_entities"


def test_validate_question_reports_lookup_failure() -> None:
    broken = LightRAGService(api_key="", transport=httpx.MockTransport(lightrag_handler))
    result = asyncio.run(QuestionValidator(broken).validate_question(_question()))
    assert not result.is_valid
    assert result.issues[0].type == "low_confidence"


def test_score_question_penalties(lightrag) -> None:
    validator = QuestionValidator(lightrag)
    question = _question()

    mostly_missing = validator.score_question(question, ["Ribosome"], ["Mitochondria", "Which Organelle"])
    # -40 for the ratio, -15 for a single valid entity, -25 for the answer
    assert mostly_missing.score == 20
    assert not mostly_missing.is_valid

    generic = validator.score_question(question, ["Mitochondria", "Ribosome", "Which Organelle", "Cell"], ["Concept"])
    assert generic.score == 90
    assert generic.is_valid
    assert any(issue.type == "ambiguous_term" for issue in generic.issues)

    nothing = validator.score_question(question, [], ["Mitochondria"])
    assert nothing.score == 0


def test_validation_summary(lightrag) -> None:
    validator = QuestionValidator(lightrag)
    results = asyncio.run(validator.validate_questions([
        _question(id=1),
        _question(id=2, question_text="why?", options=[{"id": "a", "text": "yes"}, {"id": "b", "text": "no"}]),
    ]))
    summary = validation_summary(results)
    assert summary["total_questions"] == 2
    assert summary["valid_questions"] == 1
    assert summary["average_score"] == 50
    assert summary["issue_count"]["high"] == 1
    assert not summary["overall_valid"]
