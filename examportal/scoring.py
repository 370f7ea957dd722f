"""
Answer evaluation and scoring.

Answers are compared by option text, never by position, so shuffled option
orders cannot change a verdict. Section weights are carried for display only;
the overall score is a flat weighted average over every question.
"""
import math
from typing import List, Optional, Sequence, Tuple, Union

from examportal.models import ExamSection, Question, SectionScore, UserAnswer


def round_half_up(value: float) -> int:
    """Round .5 upwards (builtin round() rounds half to even)."""
    return int(math.floor(value + 0.5))


def percentage(earned: float, total: float) -> int:
    return round_half_up(earned / total * 100) if total > 0 else 0


def parse_correct_answers(correct_answer: Union[str, Sequence[str]]) -> List[str]:
    """Normalize a correct_answer field to a list of trimmed, lowercase texts.

    Accepts a single string, a comma-separated string ("A, C") or a list.
    """
    if isinstance(correct_answer, str):
        return [a.strip().lower() for a in correct_answer.split(",")]
    return [a.strip().lower() for a in correct_answer]


def normalize_selection(selected: Sequence[str]) -> List[str]:
    return [a.strip().lower() for a in selected]


def correct_answers_display(question: Question) -> List[str]:
    if isinstance(question.correct_answer, str):
        return [a.strip() for a in question.correct_answer.split(",")]
    return list(question.correct_answer)


def is_multi_select(question: Question) -> bool:
    return len(parse_correct_answers(question.correct_answer)) > 1


def check_answer(question: Question, selected: Sequence[str]) -> bool:
    """
    True when the selection matches the correct answers.

    Both lists are normalized and sorted independently, then compared
    element by element; sizes must match. Empty selections are never correct.
    """
    if not selected:
        return False
    correct = sorted(parse_correct_answers(question.correct_answer))
    chosen = sorted(normalize_selection(selected))
    if len(chosen) != len(correct):
        return False
    return all(a == b for a, b in zip(correct, chosen))


def calculate_weighted_score(answers: Sequence[UserAnswer], questions: Sequence[Question]) -> Tuple[float, float, int]:
    """
    Returns:
        (total_points, earned_points, score) where score is a 0-100 integer
    """
    total_points = 0
    earned_points = 0
    for answer in answers:
        weight = questions[answer.question_index].points
        total_points += weight
        if answer.is_correct:
            earned_points += weight
    return total_points, earned_points, percentage(earned_points, total_points)


def calculate_section_scores(
    answers: Sequence[UserAnswer],
    questions: Sequence[Question],
    sections: Optional[Sequence[ExamSection]],
) -> List[SectionScore]:
    if not sections:
        return []

    results = []
    for section in sections:
        indices = {i for i, q in enumerate(questions) if q.section == section.name}
        section_answers = [a for a in answers if a.question_index in indices]
        _, _, score = calculate_weighted_score(section_answers, questions)
        results.append(SectionScore(section=section.name, score=score, weight=section.weight))
    return results


def is_passed(score: int, passing_score: Optional[float]) -> Optional[bool]:
    if passing_score is None:
        return None
    return score >= passing_score
