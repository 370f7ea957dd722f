#!/usr/bin/env python3
"""
Integration test: session engine + storage workflow.
Covers:
1. Exam and practice runs over shuffled and plain banks
2. Attempt building and scoring
3. Session persistence and resume
"""
import logging
import random
import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest

path = Path(__file__).resolve().parent
if str(path) not in sys.path:
    sys.path.insert(0, str(path))

from db import (
    checkpoint_session,
    get_attempts,
    get_current_session,
    get_user_stats,
    resume_or_start,
    save_current_session,
    submit_session,
)
from examportal.engine import ExamSession, calculate_history_statistics
from examportal.models import EXAM_MODE, PRACTICE_MODE, ExamAttempt, ExamSection, Question, QuestionBank, SectionScore
from examportal.store import MemoryStore

logger = logging.getLogger(__name__)


def make_bank(**kw):
    questions = [
        Question(question="What is 2 + 2?", options=["3", "4", "5", "6"], correct_answer="4", section="Math"),
        Question(
            question="What is the capital of France?",
            options=["London", "Berlin", "Paris", "Madrid"],
            correct_answer="Paris",
            explanation="Paris is the capital of France",
            hint="City of light",
            section="Geography",
        ),
        Question(question="Pick the primes", options=["2", "3", "4", "6"], correct_answer=["2", "3"], section="Math"),
        Question(question="Binary search complexity?", options=["O(n)", "O(log n)"], correct_answer="O(log n)", section="Math"),
    ]
    defaults = dict(
        id="bank-1",
        name="Mixed",
        questions=questions,
        date_added="2026-01-01T00:00:00.000Z",
        sections=[ExamSection(name="Math", weight=75), ExamSection(name="Geography", weight=25)],
    )
    defaults.update(kw)
    return QuestionBank(**defaults)


def test_mock_exam_workflow():
    """Full run: answer some right, some wrong, skip one, submit."""
    bank = make_bank(passing_score=50)
    session = ExamSession.start(bank, EXAM_MODE)
    logger.info(f"Created session {session.session_id}")

    session.select_option("4", position=0)
    session.select_option("Berlin", position=1)
    session.toggle_option("2", True, position=2)
    session.toggle_option("3", True, position=2)
    # position 3 skipped

    attempt = session.build_attempt()
    assert attempt.id == session.session_id
    assert (attempt.correct_count, attempt.wrong_count, attempt.skipped_count) == (2, 1, 1)
    assert attempt.correct_count + attempt.wrong_count + attempt.skipped_count == attempt.total_questions == 4
    assert attempt.score == 50
    assert attempt.passed is True
    sections = {s.section: s.score for s in attempt.section_scores}
    assert sections == {"Math": 67, "Geography": 0}


def test_answers_follow_bank_index_through_shuffled_order():
    bank = make_bank()
    session = ExamSession(bank, EXAM_MODE, question_order=[2, 0, 3, 1])
    assert session.current_question().question == "Pick the primes"
    session.toggle_option("2", True)
    session.toggle_option("3", True)
    session.toggle_flag()

    assert session.answers == {2: ["2", "3"]}
    assert session.flagged == {2}
    attempt = session.build_attempt()
    by_index = {a.question_index: a for a in attempt.answers}
    assert by_index[2].is_correct
    assert by_index[0].is_skipped


def test_shuffled_options_do_not_change_verdict():
    bank = make_bank(shuffle_options=True, shuffle_questions=True)
    session = ExamSession.start(bank, EXAM_MODE, rng=random.Random(3))
    assert sorted(session.question_order) == [0, 1, 2, 3]
    for pos in range(session.total_questions):
        idx = session.question_index(pos)
        assert sorted(session.display_options(pos)) == sorted(bank.questions[idx].options)
        if idx == 1:
            session.select_option("Paris", position=pos)
    by_index = {a.question_index: a for a in session.build_attempt().answers}
    assert by_index[1].is_correct


def test_toggle_option_removes_empty_selection():
    session = ExamSession(make_bank(), EXAM_MODE)
    session.toggle_option("2", True, position=2)
    session.toggle_option("2", False, position=2)
    assert 2 not in session.answers
    assert session.answered_count == 0


def test_navigation_bounds():
    session = ExamSession(make_bank(), EXAM_MODE)
    assert not session.previous()
    assert session.next()
    assert session.go_to(3)
    assert not session.next()
    assert session.current_index == 3


def test_practice_single_select_locks_with_feedback():
    session = ExamSession(make_bank(), PRACTICE_MODE)
    session.go_to(1)
    assert session.feedback() is None
    assert session.select_option("Berlin")
    assert session.is_locked()
    assert not session.select_option("Paris")
    assert session.selected_options() == ["Berlin"]

    feedback = session.feedback()
    states = {o["text"]: o["state"] for o in feedback["options"]}
    assert states == {"London": None, "Berlin": "wrong", "Paris": "correct", "Madrid": None}
    assert feedback["is_correct"] is False
    assert feedback["explanation"] == "Paris is the capital of France"


def test_practice_multi_select_locks_on_check():
    session = ExamSession(make_bank(), PRACTICE_MODE)
    session.go_to(2)
    assert session.check_answer() is None  # nothing selected yet
    session.toggle_option("3", True)
    session.toggle_option("2", True)
    assert not session.is_locked()
    assert session.check_answer() is True
    assert session.is_locked()
    assert not session.toggle_option("4", True)


def test_exam_mode_gives_no_feedback():
    session = ExamSession(make_bank(), EXAM_MODE)
    session.select_option("4")
    assert not session.is_locked()
    assert session.check_answer() is None
    assert session.feedback() is None


def test_hints_are_recorded_only_when_present():
    session = ExamSession(make_bank(), EXAM_MODE)
    assert session.reveal_hint(position=0) is None
    assert not session.hint_revealed(position=0)
    assert session.reveal_hint(position=1) == "City of light"
    by_index = {a.question_index: a for a in session.build_attempt().answers}
    assert by_index[1].used_hint
    assert not by_index[0].used_hint


def test_countdown_is_informational():
    session = ExamSession(make_bank(time_limit=1), EXAM_MODE, started_at="2026-01-01T00:00:00.000Z")
    now = datetime(2026, 1, 1, 0, 0, 30, tzinfo=timezone.utc)
    assert session.elapsed_seconds(now) == 30
    assert session.remaining_seconds(now) == 30
    later = datetime(2026, 1, 1, 1, 0, 0, tzinfo=timezone.utc)
    assert session.remaining_seconds(later) == 0
    assert ExamSession(make_bank(), EXAM_MODE).remaining_seconds() is None


def test_session_snapshot_round_trip():
    bank = make_bank(shuffle_options=True, shuffle_questions=True)
    session = ExamSession.start(bank, PRACTICE_MODE, rng=random.Random(11))
    session.go_to(1)
    session.select_option(bank.questions[session.question_index()].options[0])
    session.toggle_flag(position=3)
    session.reveal_hint(position=session.question_order.index(1))

    snapshot = session.to_dict()
    restored = ExamSession.from_dict(snapshot, bank)
    assert restored.to_dict() == snapshot
    assert restored.locked == session.locked


def test_snapshot_must_fit_bank():
    bank = make_bank()
    snapshot = ExamSession(bank, EXAM_MODE).to_dict()
    with pytest.raises(ValueError):
        ExamSession.from_dict(snapshot, make_bank(id="other"))
    snapshot["questionOrder"] = [0, 0, 1, 2]
    with pytest.raises(ValueError):
        ExamSession.from_dict(snapshot, bank)


@pytest.mark.parametrize("option_orders", [
    {"1": [0, 1]},
    {"1": [0, 1, 1, 2]},
    {"3": [0, 1, 2, 3]},
    {"9": [0, 1]},
])
def test_snapshot_option_orders_must_fit_bank(option_orders):
    bank = make_bank()
    snapshot = ExamSession(bank, EXAM_MODE).to_dict()
    snapshot["optionOrders"] = option_orders
    with pytest.raises(ValueError, match="option order"):
        ExamSession.from_dict(snapshot, bank)


def test_resume_with_bad_option_orders_starts_fresh():
    store = MemoryStore()
    bank = make_bank()
    broken = ExamSession(bank, EXAM_MODE, option_orders={1: [0, 1]})
    broken.select_option("4", position=0)
    save_current_session(store, broken)

    session, replaced = resume_or_start(store, bank, EXAM_MODE)
    assert replaced is None
    assert session.session_id != broken.session_id
    assert session.answers == {}
    # Every option stays reachable
    assert sorted(session.display_options(position=1)) == sorted(bank.questions[1].options)
    assert get_current_session(store)["id"] == session.session_id


def test_unknown_mode_rejected():
    with pytest.raises(ValueError):
        ExamSession(make_bank(), "quiz")


def test_resume_submit_through_store():
    store = MemoryStore()
    bank = make_bank()

    session, replaced = resume_or_start(store, bank, EXAM_MODE)
    assert replaced is None
    session.select_option("4", position=0)
    session.go_to(2)
    stale = resume_or_start(store, bank, EXAM_MODE)[0]
    # Nothing was checkpointed since the answer, so the stored copy has no answers
    assert stale.session_id == session.session_id
    assert stale.answers == {}

    checkpoint_session(store, session)
    resumed, _ = resume_or_start(store, bank, EXAM_MODE)
    assert resumed.answers == {0: ["4"]}
    assert resumed.current_index == 2

    attempt = submit_session(store, resumed)
    assert get_current_session(store) is None
    assert get_attempts(store)[0].id == attempt.id
    assert get_user_stats(store).total_attempts == 1


def test_starting_other_mode_replaces_session():
    store = MemoryStore()
    bank = make_bank()
    first, _ = resume_or_start(store, bank, EXAM_MODE)
    second, replaced = resume_or_start(store, bank, PRACTICE_MODE)
    assert second.session_id != first.session_id
    assert replaced["id"] == first.session_id
    assert get_current_session(store)["mode"] == PRACTICE_MODE


def _attempt(attempt_id, bank_id, mode, score, sections=()):
    return ExamAttempt(
        id=attempt_id,
        question_bank_id=bank_id,
        question_bank_name=bank_id.title(),
        mode=mode,
        start_time="2026-01-01T00:00:00.000Z",
        end_time="2026-01-01T00:10:00.000Z",
        answers=[],
        total_questions=10,
        correct_count=score // 10,
        wrong_count=10 - score // 10,
        skipped_count=0,
        score=score,
        section_scores=[SectionScore(section=name, score=s, weight=50) for name, s in sections],
    )


def test_history_statistics():
    attempts = [  # newest first
        _attempt("a3", "math", EXAM_MODE, 90, [("Algebra", 100), ("Geometry", 80)]),
        _attempt("a2", "math", PRACTICE_MODE, 60, [("Algebra", 40), ("Geometry", 80)]),
        _attempt("a1", "verbal", EXAM_MODE, 75),
    ]
    stats = calculate_history_statistics(attempts)
    assert stats["count"] == 3
    assert stats["average_score"] == 75
    assert stats["best_score"] == 90
    assert [p["score"] for p in stats["chart"]] == [75, 60, 90]
    assert stats["weak_sections"] == [("Algebra", 70), ("Geometry", 80)]

    math_exam = calculate_history_statistics(attempts, bank_id="math", mode=EXAM_MODE)
    assert math_exam["count"] == 1
    assert [a.id for a in math_exam["recent"]] == ["a3"]

    assert calculate_history_statistics([])["average_score"] == 0
