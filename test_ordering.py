"""
Question and option orderings.

Run: pytest test_ordering.py
"""
import random
import sys
from pathlib import Path

path = Path(__file__).resolve().parent
if str(path) not in sys.path:
    sys.path.insert(0, str(path))

from examportal.models import EXAM_MODE, PRACTICE_MODE, Question, QuestionBank
from examportal.ordering import (
    generate_option_orders,
    generate_question_order,
    should_shuffle_questions,
    shuffle_indices,
)


def make_bank(**kw):
    questions = [Question(question=f"Q{i}", options=["a", "b", "c"], correct_answer="a") for i in range(5)]
    return QuestionBank(id="b1", name="Bank", questions=questions, date_added="2026-01-01T00:00:00.000Z", **kw)


def test_shuffle_is_a_permutation():
    rng = random.Random(7)
    for n in range(0, 30):
        assert sorted(shuffle_indices(n, rng)) == list(range(n))


def test_shuffle_is_reproducible_with_seeded_rng():
    assert shuffle_indices(20, random.Random(42)) == shuffle_indices(20, random.Random(42))


def test_unshuffled_order_is_identity():
    assert generate_question_order(4, False) == [0, 1, 2, 3]


def test_question_shuffle_only_in_exam_mode():
    bank = make_bank(shuffle_questions=True)
    assert should_shuffle_questions(bank, EXAM_MODE)
    assert not should_shuffle_questions(bank, PRACTICE_MODE)
    assert not should_shuffle_questions(make_bank(), EXAM_MODE)


def test_option_orders_keyed_by_bank_index():
    assert generate_option_orders(make_bank()) == {}
    orders = generate_option_orders(make_bank(shuffle_options=True), random.Random(1))
    assert set(orders) == {0, 1, 2, 3, 4}
    assert all(sorted(o) == [0, 1, 2] for o in orders.values())
