"""
Answer evaluation and scoring: order-independent checks, weighted and section scores.

Run: pytest test_scoring.py
"""
import sys
from pathlib import Path

path = Path(__file__).resolve().parent
if str(path) not in sys.path:
    sys.path.insert(0, str(path))

from examportal.models import ExamSection, Question, UserAnswer
from examportal.scoring import (
    calculate_section_scores,
    calculate_weighted_score,
    check_answer,
    correct_answers_display,
    is_multi_select,
    is_passed,
    parse_correct_answers,
    percentage,
    round_half_up,
)


def q(correct, options=("A", "B", "C", "D"), **kw):
    return Question(question="?", options=list(options), correct_answer=correct, **kw)


def answer(idx, selected, correct):
    return UserAnswer(question_index=idx, selected_options=selected, is_correct=correct)


def test_comma_separated_answer_matches_in_any_order():
    assert check_answer(q("A, C"), ["C", "A"])
    assert check_answer(q(["A", "C"]), ["A", "C"])


def test_comparison_is_trimmed_and_case_insensitive():
    assert check_answer(q("Paris", options=["Paris", "Rome"]), [" paris "])


def test_partial_or_extra_selection_is_wrong():
    question = q("A, C")
    assert not check_answer(question, ["A"])
    assert not check_answer(question, ["A", "B", "C"])


def test_empty_selection_is_never_correct():
    assert not check_answer(q("A"), [])


def test_parse_correct_answers_forms():
    assert parse_correct_answers("A, C") == ["a", "c"]
    assert parse_correct_answers(["X ", " y"]) == ["x", "y"]
    assert correct_answers_display(q("A, C")) == ["A", "C"]
    assert is_multi_select(q("A, C"))
    assert not is_multi_select(q("A"))


def test_weighted_score_example():
    questions = [q("A", weight=1), q("B", weight=3)]
    answers = [answer(0, ["C"], False), answer(1, ["B"], True)]
    assert calculate_weighted_score(answers, questions) == (4, 3, 75)


def test_uniform_weight_score_is_rounded_percentage():
    questions = [q("A") for _ in range(3)]
    answers = [answer(0, ["A"], True), answer(1, ["A"], True), answer(2, [], False)]
    total, earned, score = calculate_weighted_score(answers, questions)
    assert (total, earned) == (3, 2)
    assert score == 67


def test_zero_weight_counts_as_default():
    questions = [q("A", weight=0), q("A", weight=1)]
    answers = [answer(0, ["A"], True), answer(1, ["B"], False)]
    assert calculate_weighted_score(answers, questions) == (2, 1, 50)


def test_no_questions_scores_zero():
    assert calculate_weighted_score([], []) == (0, 0, 0)


def test_rounding_is_half_up():
    assert round_half_up(2.5) == 3
    assert round_half_up(62.5) == 63
    assert percentage(1, 8) == 13


def test_section_scores_follow_declared_sections():
    questions = [q("A", section="Math"), q("A", section="Math"), q("A", section="Verbal")]
    answers = [answer(0, ["A"], True), answer(1, ["B"], False), answer(2, ["A"], True)]
    sections = [ExamSection(name="Math", weight=60), ExamSection(name="Verbal", weight=40), ExamSection(name="Logic", weight=0)]
    scores = {s.section: (s.score, s.weight) for s in calculate_section_scores(answers, questions, sections)}
    assert scores == {"Math": (50, 60), "Verbal": (100, 40), "Logic": (0, 0)}


def test_no_sections_no_section_scores():
    assert calculate_section_scores([answer(0, ["A"], True)], [q("A", section="Math")], []) == []


def test_passing_score():
    assert is_passed(70, None) is None
    assert is_passed(70, 70) is True
    assert is_passed(69, 70) is False
    assert is_passed(0, 0) is True
