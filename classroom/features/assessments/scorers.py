"""Per-type correctness functions.

Every scorer takes a parsed definition and a parsed answer set and returns a
``Tally`` of correct units over total units. Percent scores and leaderboard
counts are both derived from the same tally. Answers that reference ids the
payload does not know are simply wrong.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Union

from classroom.features.assessments.schemas import (
    ChoiceAnswers,
    DragDropEvaluation,
    FillBlankChallenge,
    FillBlankChallengeAnswers,
    FillBlankEvaluation,
    MatchingChallenge,
    MatchingEvaluation,
    MatchingPayload,
    MultipleChoiceChallenge,
    QuizEvaluation,
    SelectImageChallenge,
)


@dataclass(frozen=True)
class Tally:
    correct: int
    total: int

    @property
    def percentage(self) -> int:
        return percentage(self.correct, self.total)


def percentage(correct: int, total: int) -> int:
    """Half-up rounded percentage; an empty tally scores 0."""
    if total <= 0:
        return 0
    value = math.floor(100 * correct / total + 0.5)
    return max(0, min(100, int(value)))


def normalise_text(value: Any) -> str:
    return str(value if value is not None else "").strip().lower()


def score_quiz(definition: QuizEvaluation, answers: Sequence[Optional[int]]) -> Tally:
    correct = 0
    for idx, question in enumerate(definition.questions):
        selected = answers[idx] if idx < len(answers) else None
        if selected is not None and selected == question.correct:
            correct += 1
    return Tally(correct=correct, total=len(definition.questions))


def score_fill_blank(definition: FillBlankEvaluation, answers: Sequence[Union[str, List[str], None]]) -> Tally:
    correct = 0
    total = 0
    for idx, question in enumerate(definition.questions):
        expected = question.expected_answers
        given = answers[idx] if idx < len(answers) else None
        if isinstance(given, list):
            given_list: List[Any] = list(given)
        else:
            given_list = [given]
        for blank_idx, blank in enumerate(expected):
            total += 1
            student = given_list[blank_idx] if blank_idx < len(given_list) else None
            if student is not None and normalise_text(student) == normalise_text(blank):
                correct += 1
    return Tally(correct=correct, total=total)


def _score_pairs(payload: MatchingPayload, answers: Dict[str, str]) -> Tally:
    correct = 0
    for pair in payload.pairs:
        selected = answers.get(pair.key)
        if selected is not None and selected == pair.designated_right_id:
            correct += 1
    return Tally(correct=correct, total=len(payload.pairs))


def score_matching(definition: MatchingEvaluation, answers: Dict[str, str]) -> Tally:
    return _score_pairs(definition.questions, answers)


def score_dragdrop(definition: DragDropEvaluation, answers: Dict[str, str]) -> Tally:
    board = definition.questions.dragdrop
    correct = 0
    for item in board.items:
        assigned = answers.get(item.id)
        expected = board.mapping.get(item.id)
        if assigned is not None and expected is not None and assigned == expected:
            correct += 1
    return Tally(correct=correct, total=len(board.items))


def score_choice(definition: Union[MultipleChoiceChallenge, SelectImageChallenge], answers: ChoiceAnswers) -> Tally:
    correct_id = definition.payload.correct_option_id
    hit = bool(answers.selected) and correct_id is not None and answers.selected == correct_id
    return Tally(correct=1 if hit else 0, total=1)


def score_matching_challenge(definition: MatchingChallenge, answers: Dict[str, str]) -> Tally:
    return _score_pairs(definition.payload, answers)


def score_fill_blank_challenge(definition: FillBlankChallenge, answers: FillBlankChallengeAnswers) -> Optional[Tally]:
    """Grade sections (or the single prompt) that carry an expected answer.

    Returns None when the teacher configured no expected answers, in which
    case the response goes to manual review.
    """
    payload = definition.payload
    graded = [(payload.section_key(i), s.answer) for i, s in enumerate(payload.sections) if s.answer is not None]
    if graded:
        given = {a.section_id: a.text for a in answers.sections}
        correct = 0
        for key, expected in graded:
            student = given.get(key)
            if student is not None and normalise_text(student) == normalise_text(expected):
                correct += 1
        return Tally(correct=correct, total=len(graded))
    if payload.answer is not None:
        hit = answers.text is not None and normalise_text(answers.text) == normalise_text(payload.answer)
        return Tally(correct=1 if hit else 0, total=1)
    return None


__all__ = [
    "Tally",
    "percentage",
    "normalise_text",
    "score_quiz",
    "score_fill_blank",
    "score_matching",
    "score_dragdrop",
    "score_choice",
    "score_matching_challenge",
    "score_fill_blank_challenge",
]
