"""
Bank ingestion: upload contract, keyed options, letter answers, validation errors.

Run: pytest test_banks.py
"""
import json
import sys
from pathlib import Path

import pytest

path = Path(__file__).resolve().parent
if str(path) not in sys.path:
    sys.path.insert(0, str(path))

from db import get_question_banks, save_question_bank
from examportal.banks import (
    BankFormatError,
    bank_name_from_filename,
    clean_question_dict,
    clean_text,
    normalize_bank,
    parse_upload,
)
from examportal.engine import ExamSession
from examportal.models import EXAM_MODE
from examportal.scoring import check_answer, is_multi_select
from examportal.store import MemoryStore

CAPITAL = {"question": "Capital of France?", "options": ["London", "Paris"], "correct_answer": "Paris"}


def test_array_upload():
    bank = parse_upload(json.dumps([CAPITAL]), "world-capitals_2.json")
    assert bank.name == "world capitals 2"
    assert bank.description == "Uploaded from world-capitals_2.json"
    assert len(bank.questions) == 1
    assert bank.questions[0].correct_answer == "Paris"
    assert bank.id


def test_object_upload_keeps_name_and_settings():
    doc = {
        "name": "Geography",
        "passingScore": 60,
        "timeLimit": 20,
        "shuffleQuestions": True,
        "sections": [{"name": "Europe", "weight": 100}],
        "questions": [dict(CAPITAL, section="Europe", weight=2, difficulty="Easy")],
    }
    bank = parse_upload(json.dumps(doc), "geo.json", bank_id="fixed")
    assert bank.id == "fixed"
    assert bank.name == "Geography"
    assert (bank.passing_score, bank.time_limit, bank.shuffle_questions) == (60, 20, True)
    assert bank.sections[0].name == "Europe"
    assert bank.questions[0].difficulty == "easy"
    assert bank.questions[0].points == 2


def test_single_question_upload():
    assert len(parse_upload(json.dumps(CAPITAL), "one.json").questions) == 1


def test_keyed_options_and_letter_answers():
    doc = [{"question": "Immutable?", "options": {"B": "tuple", "A": "list", "C": "frozenset"}, "correct_answer": "B, C"}]
    q = parse_upload(json.dumps(doc), "x.json").questions[0]
    assert q.options == ["list", "tuple", "frozenset"]
    assert q.correct_answer == ["tuple", "frozenset"]


def test_letter_answer_against_list_options():
    q = parse_upload(json.dumps([dict(CAPITAL, correct_answer="b")]), "x.json").questions[0]
    assert q.correct_answer == "Paris"


def test_answer_with_comma_in_option_text():
    doc = [{"question": "Where?", "options": ["Paris, France", "Rome, Italy"], "correct_answer": "Paris, France"}]
    bank = parse_upload(json.dumps(doc), "x.json")
    question = bank.questions[0]
    assert question.correct_answer == ["Paris, France"]
    assert not is_multi_select(question)

    session = ExamSession(bank, EXAM_MODE)
    session.select_option("Paris, France")
    attempt = session.build_attempt()
    assert attempt.correct_count == 1
    assert attempt.score == 100

    # Survives a store round trip (export/import re-normalizes banks)
    again = normalize_bank(bank.to_dict())
    assert again.questions[0].correct_answer == ["Paris, France"]


def test_comma_option_among_several_answers():
    doc = [{"question": "Which?", "options": ["Paris, France", "Rome, Italy", "Oslo"], "correct_answer": ["Paris, France", "Oslo"]}]
    question = parse_upload(json.dumps(doc), "x.json").questions[0]
    assert question.correct_answer == ["Paris, France", "Oslo"]
    assert check_answer(question, ["Oslo", "Paris, France"])


@pytest.mark.parametrize("doc, message", [
    ([{"question": "Q", "options": ["a", "b"]}], "Question 1"),
    ([CAPITAL, {"question": "Q", "options": ["a"], "correct_answer": "a"}], "Question 2"),
    ([dict(CAPITAL, correct_answer="Berlin")], "does not match"),
    ([dict(CAPITAL, weight=-1)], "weight"),
    ([], "no questions"),
    ({"items": []}, "Invalid format"),
    ({"questions": [CAPITAL], "passingScore": 120}, "passingScore"),
    ({"questions": [CAPITAL], "timeLimit": 0}, "timeLimit"),
])
def test_invalid_uploads_rejected(doc, message):
    with pytest.raises(BankFormatError, match=message):
        parse_upload(json.dumps(doc), "bad.json")


def test_invalid_json_rejected():
    with pytest.raises(BankFormatError, match="Failed to parse JSON file"):
        parse_upload("{oops", "bad.json")


def test_rejected_upload_leaves_banks_unchanged():
    store = MemoryStore()
    save_question_bank(store, parse_upload(json.dumps([CAPITAL]), "good.json", bank_id="good"))
    with pytest.raises(BankFormatError):
        save_question_bank(store, parse_upload(json.dumps([{"question": "Q", "options": ["a", "b"]}]), "bad.json"))
    assert [b.id for b in get_question_banks(store)] == ["good"]


def test_normalize_bank_defaults():
    bank = normalize_bank({"questions": [CAPITAL]}, default_id="my_bank", default_date="2026-01-01T00:00:00.000Z")
    assert (bank.id, bank.name, bank.date_added) == ("my_bank", "my bank", "2026-01-01T00:00:00.000Z")
    with pytest.raises(BankFormatError):
        normalize_bank({"questions": [CAPITAL]})
    with pytest.raises(BankFormatError, match="missing 'questions'"):
        normalize_bank({"id": "x", "questions": []})


def test_text_cleanup():
    assert bank_name_from_filename("my-bank_v2.JSON") == "my bank v2"
    assert clean_text("  two\n  lines\t here ") == "two lines here"
    raw = {"question": "What\n is  it?", "options": {"A": " one\n", "B": "two"}, "correct_answer": "A", "source": "x"}
    assert clean_question_dict(raw) == {"question": "What is it?", "options": ["one", "two"], "correct_answer": "one", "source": "x"}
