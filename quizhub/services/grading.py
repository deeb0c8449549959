"""
Scoring, letter grades and option-order utilities
"""

import random
from dataclasses import dataclass
from typing import List, Dict, Any, Optional, Sequence, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class Grade:
    grade: str
    points: float
    description: str


GRADE_SCALE = [
    (95, Grade("A+", 4.0, "Exceptional")),
    (90, Grade("A", 4.0, "Excellent")),
    (85, Grade("A-", 3.7, "Very Good")),
    (80, Grade("B+", 3.3, "Good")),
    (75, Grade("B", 3.0, "Above Average")),
    (70, Grade("B-", 2.7, "Satisfactory")),
    (65, Grade("C+", 2.3, "Acceptable")),
    (60, Grade("C", 2.0, "Average")),
    (55, Grade("C-", 1.7, "Below Average")),
    (50, Grade("D", 1.0, "Poor")),
]
FAIL = Grade("F", 0.0, "Fail")


def grade_for(score: Optional[float]) -> Grade:
    if score is None:
        return FAIL
    for threshold, grade in GRADE_SCALE:
        if score >= threshold:
            return grade
    return FAIL


def calculate_score(correct: int, total: int) -> float:
    if total <= 0:
        return 0.0
    return float(round(correct / total * 100))


@dataclass
class GradedAnswer:
    question_id: int
    selected: Optional[str]
    correct_answer: str
    is_correct: bool
    time_spent: Optional[int]
    marked_for_review: bool


@dataclass
class GradeResult:
    score: float
    total_correct: int
    total_questions: int
    answers: List[GradedAnswer]


def answers_by_question(answers: Optional[Sequence[Dict[str, Any]]]) -> Dict[int, Dict[str, Any]]:
    """Index saved answers by question id; later entries win."""
    indexed: Dict[int, Dict[str, Any]] = {}
    for entry in answers or []:
        qid = entry.get("questionId", entry.get("question_id"))
        try:
            indexed[int(qid)] = entry
        except (TypeError, ValueError):
            continue
    return indexed


def grade_answers(questions, answers: Optional[Sequence[Dict[str, Any]]]) -> GradeResult:
    """An answer is correct when it equals the question's correct option id."""
    indexed = answers_by_question(answers)
    graded: List[GradedAnswer] = []
    correct = 0
    for question in questions:
        entry = indexed.get(question.id, {})
        selected = entry.get("answer")
        selected = str(selected) if selected not in (None, "") else None
        is_correct = selected is not None and selected == question.correct_answer
        if is_correct:
            correct += 1
        graded.append(GradedAnswer(
            question_id=question.id,
            selected=selected,
            correct_answer=question.correct_answer,
            is_correct=is_correct,
            time_spent=entry.get("timeSpent"),
            marked_for_review=bool(entry.get("markedForReview", False)),
        ))
    total = len(graded)
    return GradeResult(
        score=calculate_score(correct, total),
        total_correct=correct,
        total_questions=total,
        answers=graded,
    )


def shuffle_list(items: Sequence[T], rng: Optional[random.Random] = None) -> List[T]:
    """Fisher-Yates shuffle into a new list."""
    rng = rng or random.Random()
    shuffled = list(items)
    for i in range(len(shuffled) - 1, 0, -1):
        j = rng.randint(0, i)
        shuffled[i], shuffled[j] = shuffled[j], shuffled[i]
    return shuffled


def options_distribution(questions) -> Dict[str, Any]:
    """Where the correct answer sits (A-D) across questions; >50% in one slot is a smell."""
    questions = list(questions)
    counts = {"A": 0, "B": 0, "C": 0, "D": 0}
    for question in questions:
        ids = [opt.get("id") for opt in question.options or []]
        if question.correct_answer in ids:
            index = ids.index(question.correct_answer)
            if index < 4:
                counts[chr(65 + index)] += 1
    total = len(questions)
    return {
        "is_well_distributed": all(count <= total * 0.5 for count in counts.values()),
        "position_counts": counts,
        "total_questions": total,
    }
