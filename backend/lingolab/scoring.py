"""
Deterministic scorers for TELC A1 exam sections.

Every scorer compares the learner's answer map (question number -> letter or
"true"/"false") against the answer key stored with the test. Matching is an
exact, case-sensitive string comparison; there is no partial credit.
Example questions (``is_example``) are shown to learners but never scored.
"""

from __future__ import annotations
import math
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict


class ValidationResult(BaseModel):
    # Sections add their own display fields (scenario_text, statement, ...)
    model_config = ConfigDict(extra="allow")

    question_number: Any = None
    user_answer: str
    correct_answer: str
    is_correct: bool
    explanation: str = ""


class ScoreResult(BaseModel):
    score: int
    total_score: int
    percentage: int
    results: List[Dict[str, Any]]


def round_half_up(value: float) -> int:
    # Built-in round() is banker's rounding; exam percentages round .5 up
    return int(math.floor(value + 0.5))


def percentage_of(correct: int, total: int) -> int:
    if total <= 0:
        return 0
    return round_half_up(correct / total * 100)


def answer_for(answers: Mapping[Any, Any], question_number: Any) -> str:
    """Look up an answer keyed by int or by its JSON string form."""
    value = answers.get(question_number)
    if value is None:
        value = answers.get(str(question_number))
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _correct_option(options: Iterable[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    for opt in options or []:
        if opt.get("is_correct") is True:
            return opt
    return None


def _option_with_letter(options: Iterable[Dict[str, Any]], letter: str, key: str = "letter") -> Optional[Dict[str, Any]]:
    if not letter:
        return None
    for opt in options or []:
        if opt.get(key) == letter:
            return opt
    return None


def _score_questions(
    questions: Iterable[Dict[str, Any]],
    answers: Mapping[Any, Any],
    expected: Callable[[Dict[str, Any]], str],
    describe: Callable[[Dict[str, Any], str, str], Dict[str, Any]],
) -> ScoreResult:
    correct_count = 0
    total = 0
    results: List[Dict[str, Any]] = []
    for question in questions or []:
        if question.get("is_example"):
            continue
        total += 1
        number = question.get("question_number")
        user_answer = answer_for(answers, number)
        correct_answer = str(expected(question) or "")
        is_correct = user_answer != "" and user_answer == correct_answer
        if is_correct:
            correct_count += 1
        item = ValidationResult(
            question_number=number,
            user_answer=user_answer,
            correct_answer=correct_answer,
            is_correct=is_correct,
            **describe(question, user_answer, correct_answer),
        )
        results.append(item.model_dump())
    return ScoreResult(
        score=correct_count,
        total_score=total,
        percentage=percentage_of(correct_count, total),
        results=results,
    )


# ----------------------------------------------------------------------------
# Listening
# ----------------------------------------------------------------------------

def score_telc_a1_listening_section1(question_data: Dict[str, Any], answers: Mapping[Any, Any]) -> ScoreResult:
    """Picture multiple choice; explanation comes from the chosen option."""

    def expected(q: Dict[str, Any]) -> str:
        opt = _correct_option(q.get("options"))
        return (opt or {}).get("letter") or ""

    def describe(q: Dict[str, Any], user_answer: str, correct_answer: str) -> Dict[str, Any]:
        selected = _option_with_letter(q.get("options"), user_answer)
        correct = _correct_option(q.get("options"))
        explanation = (selected or {}).get("explanation") or (correct or {}).get("explanation") or ""
        return {"explanation": explanation}

    return _score_questions(question_data.get("question_items") or [], answers, expected, describe)


def score_telc_a1_listening_section2(question_data: Dict[str, Any], answers: Mapping[Any, Any]) -> ScoreResult:
    """True/false statements about a dialogue."""

    def expected(q: Dict[str, Any]) -> str:
        answer = q.get("answer") or {}
        return "true" if answer.get("is_true") else "false"

    def describe(q: Dict[str, Any], user_answer: str, correct_answer: str) -> Dict[str, Any]:
        return {"explanation": (q.get("answer") or {}).get("explanation") or ""}

    return _score_questions(question_data.get("questions") or [], answers, expected, describe)


def score_telc_a1_listening_section3(question_data: Dict[str, Any], answers: Mapping[Any, Any]) -> ScoreResult:
    # A question whose options carry no is_correct flag expects "" and can never be right
    def expected(q: Dict[str, Any]) -> str:
        opt = _correct_option(q.get("options"))
        return (opt or {}).get("letter") or ""

    def describe(q: Dict[str, Any], user_answer: str, correct_answer: str) -> Dict[str, Any]:
        opt = _correct_option(q.get("options"))
        explanation = f'Die richtige Antwort ist "{opt.get("text", "")}".' if opt else ""
        return {"explanation": explanation}

    return _score_questions(question_data.get("questions") or [], answers, expected, describe)


# ----------------------------------------------------------------------------
# Reading
# ----------------------------------------------------------------------------

def score_telc_a1_reading_section2(question_data: Dict[str, Any], answers: Mapping[Any, Any]) -> ScoreResult:
    """Pick the matching website (a/b) for each scenario."""

    def expected(q: Dict[str, Any]) -> str:
        return q.get("correct_answer") or ""

    def describe(q: Dict[str, Any], user_answer: str, correct_answer: str) -> Dict[str, Any]:
        selected = _option_with_letter(q.get("options"), user_answer, key="option_letter")
        correct = _option_with_letter(q.get("options"), correct_answer, key="option_letter")
        explanation = (
            (selected or {}).get("explanation")
            or (correct or {}).get("explanation")
            or q.get("explanation")
            or ""
        )
        return {"explanation": explanation, "scenario_text": q.get("scenario_text")}

    return _score_questions(question_data.get("questions") or [], answers, expected, describe)


def score_telc_a1_reading_section3(question_data: Dict[str, Any], answers: Mapping[Any, Any]) -> ScoreResult:
    def expected(q: Dict[str, Any]) -> str:
        return q.get("correct_answer") or ""

    def describe(q: Dict[str, Any], user_answer: str, correct_answer: str) -> Dict[str, Any]:
        return {
            "explanation": q.get("explanation") or "",
            "statement_text": q.get("statement_text"),
            "context_setting": q.get("context_setting"),
            "information_snippet_text": q.get("information_snippet_text"),
        }

    return _score_questions(question_data.get("questions") or [], answers, expected, describe)


LISTENING_SCORERS: Dict[int, Callable[[Dict[str, Any], Mapping[Any, Any]], ScoreResult]] = {
    1: score_telc_a1_listening_section1,
    2: score_telc_a1_listening_section2,
    3: score_telc_a1_listening_section3,
}

READING_SCORERS: Dict[int, Callable[[Dict[str, Any], Mapping[Any, Any]], ScoreResult]] = {
    2: score_telc_a1_reading_section2,
    3: score_telc_a1_reading_section3,
}
