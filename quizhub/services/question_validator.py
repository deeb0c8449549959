"""
Question validation against the LightRAG knowledge graph.

Entities are pulled out of the question, its options and its explanation, then
looked up in the graph. The share of entities that exist drives a 0-100 score.
"""

import asyncio
import logging
import re
from dataclasses import dataclass, field, asdict
from typing import List, Dict, Any, Optional, Sequence

from quizhub.services.errors import QuizHubError
from quizhub.services.lightrag_service import LightRAGService

logger = logging.getLogger(__name__)

PASSING_SCORE = 70
_GENERIC_TERM = re.compile(r"^(thing|concept|idea|method|way|approach)s?$", re.IGNORECASE)


@dataclass
class ValidationIssue:
    type: str  # missing_entity | weak_connection | ambiguous_term | no_entities | low_confidence
    severity: str  # low | medium | high
    message: str
    entity: Optional[str] = None


@dataclass
class QuestionValidationResult:
    is_valid: bool
    score: int
    issues: List[ValidationIssue] = field(default_factory=list)
    valid_entities: List[str] = field(default_factory=list)
    invalid_entities: List[str] = field(default_factory=list)
    suggestions: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class QuestionToValidate:
    id: Any
    question_text: str
    options: List[Dict[str, str]]
    correct_answer: str
    explanation: Optional[str] = None


class QuestionValidator:
    def __init__(self, lightrag: LightRAGService):
        self.lightrag = lightrag

    def _collect_entities(self, question: QuestionToValidate) -> List[str]:
        extract = self.lightrag.extract_entities_from_text
        entities = list(extract(question.question_text))
        for option in question.options:
            entities.extend(extract(option.get("text", "")))
        if question.explanation:
            entities.extend(extract(question.explanation))
        # order-preserving dedupe
        return list(dict.fromkeys(entities))

    async def validate_question(self, question: QuestionToValidate) -> QuestionValidationResult:
        entities = self._collect_entities(question)
        if not entities:
            return QuestionValidationResult(
                is_valid=False,
                score=0,
                issues=[ValidationIssue(
                    type="no_entities",
                    severity="high",
                    message=(
                        "No recognizable entities found in the question. This may indicate the question "
                        "is too generic or not based on document content."
                    ),
                )],
                suggestions=[
                    "Make the question more specific by including proper nouns or technical terms",
                    "Reference specific concepts from the source material",
                    "Include names, dates, or specific terminology",
                ],
            )

        try:
            lookup = await self.lightrag.check_multiple_entities(entities)
        except QuizHubError as e:
            logger.error(f"[Validator] entity lookup failed for question {question.id}: {e.message}")
            return QuestionValidationResult(
                is_valid=False,
                score=0,
                issues=[ValidationIssue(
                    type="low_confidence",
                    severity="high",
                    message=f"Validation failed due to an error: {e.message}",
                )],
                suggestions=["Please try again or check the document processing status"],
            )

        valid = [entity for entity in entities if lookup.get(entity, {}).get("exists")]
        invalid = [entity for entity in entities if not lookup.get(entity, {}).get("exists")]
        return self.score_question(question, valid, invalid)

    def score_question(
        self,
        question: QuestionToValidate,
        valid: List[str],
        invalid: List[str],
    ) -> QuestionValidationResult:
        issues: List[ValidationIssue] = []
        suggestions: List[str] = []
        score = 100
        total = len(valid) + len(invalid)
        ratio = len(valid) / total if total else 0

        if ratio < 0.5:
            score -= 40
            issues.append(ValidationIssue(
                "missing_entity", "high",
                f"More than half of the entities ({len(invalid)}/{total}) are not found in the knowledge graph",
            ))
            suggestions.append("Ensure question content is based on the uploaded documents")
        elif ratio < 0.8:
            score -= 20
            issues.append(ValidationIssue(
                "missing_entity", "medium",
                f"Some entities ({len(invalid)}/{total}) are not found in the knowledge graph",
            ))
            suggestions.append("Review question content for accuracy")

        if not valid:
            score = 0
            issues.append(ValidationIssue(
                "missing_entity", "high", "No valid entities found in the question content",
            ))
            suggestions.append("Base the question on specific content from the uploaded documents")
        elif len(valid) < 2:
            score -= 15
            issues.append(ValidationIssue(
                "weak_connection", "medium", "Question has very few connections to the knowledge graph",
            ))
            suggestions.append("Include more specific terms or concepts from the source material")

        generic = [entity for entity in invalid if _GENERIC_TERM.match(entity)]
        if generic:
            score -= 10
            issues.append(ValidationIssue(
                "ambiguous_term", "low", f"Question contains generic terms: {', '.join(generic)}",
            ))
            suggestions.append("Replace generic terms with specific concepts from the documents")

        correct = next((o for o in question.options if o.get("id") == question.correct_answer), None)
        if correct is not None:
            answer_entities = self.lightrag.extract_entities_from_text(correct.get("text", ""))
            if answer_entities and not any(entity in valid for entity in answer_entities):
                score -= 25
                issues.append(ValidationIssue(
                    "missing_entity", "high",
                    "The correct answer contains entities not found in the knowledge graph",
                ))
                suggestions.append("Ensure the correct answer is based on document content")

        score = max(0, min(100, score))
        is_valid = score >= PASSING_SCORE and not any(issue.severity == "high" for issue in issues)
        if score >= 80:
            suggestions.append("Question appears to be well-connected to the source material")

        return QuestionValidationResult(
            is_valid=is_valid,
            score=score,
            issues=issues,
            valid_entities=valid,
            invalid_entities=invalid,
            suggestions=suggestions,
        )

    async def validate_questions(
        self, questions: Sequence[QuestionToValidate]
    ) -> Dict[Any, QuestionValidationResult]:
        results = await asyncio.gather(*(self.validate_question(q) for q in questions))
        return {question.id: result for question, result in zip(questions, results)}


def validation_summary(results: Dict[Any, QuestionValidationResult]) -> Dict[str, Any]:
    values = list(results.values())
    total = len(values)
    valid_count = sum(1 for result in values if result.is_valid)
    average = sum(result.score for result in values) / total if total else 0
    issue_count = {"high": 0, "medium": 0, "low": 0}
    for result in values:
        for issue in result.issues:
            issue_count[issue.severity] = issue_count.get(issue.severity, 0) + 1
    return {
        "total_questions": total,
        "valid_questions": valid_count,
        "invalid_questions": total - valid_count,
        "average_score": round(average),
        "issue_count": issue_count,
        "overall_valid": total > 0 and average >= PASSING_SCORE and issue_count["high"] == 0,
    }
