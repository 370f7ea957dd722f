"""
Question bank ingestion: upload contract, normalization and validation.

Whatever shape a bank file arrives in (options as a list or as a keyed object,
answers as letters or texts), it leaves this module as a QuestionBank whose
options are an ordered list and whose correct answers are option texts.
"""
import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union
from uuid import uuid4

from examportal.models import DIFFICULTIES, ExamSection, Question, QuestionBank, utcnow_iso

logger = logging.getLogger(__name__)

MIN_OPTIONS = 2
OPTION_LABELS = "ABCDEFGHIJKLMNOPQRSTUVWXYZ"

_WHITESPACE_RE = re.compile(r"\s+")
_JSON_SUFFIX_RE = re.compile(r"\.json$", re.I)


class BankFormatError(ValueError):
    """Uploaded or imported JSON does not describe valid question banks."""


def clean_text(text: str) -> str:
    """Collapse newlines and runs of whitespace into single spaces."""
    return _WHITESPACE_RE.sub(" ", text).strip()


def bank_name_from_filename(filename: str) -> str:
    stem = _JSON_SUFFIX_RE.sub("", Path(filename).name)
    return stem.replace("-", " ").replace("_", " ")


def _answer_tokens(correct_answer: Union[str, List[str]]) -> List[str]:
    if isinstance(correct_answer, str):
        return [a.strip() for a in correct_answer.split(",")]
    return [str(a).strip() for a in correct_answer]


def normalize_options(options: Any, correct_answer: Any) -> Tuple[Any, Any]:
    """
    Convert keyed options ({"A": ..., "B": ...}) to a list in key order and
    letter answers to option texts. List options pass through unchanged.
    """
    if not isinstance(options, dict):
        return options, correct_answer

    keys = sorted(options)
    option_list = [options[k] for k in keys]
    if isinstance(correct_answer, (str, list)) and correct_answer:
        by_key = {str(k).strip().upper(): options[k] for k in keys}
        tokens = _answer_tokens(correct_answer)
        if all(t.upper() in by_key for t in tokens):
            texts = [by_key[t.upper()] for t in tokens]
            correct_answer = texts[0] if len(texts) == 1 else texts
    return option_list, correct_answer


def _pack(texts: List[str]) -> Union[str, List[str]]:
    if len(texts) == 1 and "," not in texts[0]:
        return texts[0]
    return texts


def _resolve_correct_answer(correct_answer: Union[str, List[str]], options: List[str]) -> Optional[Union[str, List[str]]]:
    """
    Map correct_answer onto option texts.

    Returns the answer as a single text or a list of texts, or None when it
    does not name options (by text or by letter). A single text containing
    a comma stays a one-item list: string answers are split on commas when
    scored.
    """
    by_text = {o.strip().lower(): o for o in options}

    # A whole string answer may itself contain commas ("Paris, France")
    if isinstance(correct_answer, str) and correct_answer.strip().lower() in by_text:
        return _pack([by_text[correct_answer.strip().lower()]])

    tokens = _answer_tokens(correct_answer)
    if not tokens or any(not t for t in tokens):
        return None
    if all(t.lower() in by_text for t in tokens):
        texts = [by_text[t.lower()] for t in tokens]
    elif all(len(t) == 1 and t.upper() in OPTION_LABELS[:len(options)] for t in tokens):
        texts = [options[OPTION_LABELS.index(t.upper())] for t in tokens]
    else:
        return None
    return _pack(texts)


def _optional_text(raw: Dict, key: str, where: str) -> Optional[str]:
    value = raw.get(key)
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise BankFormatError(f"{where}: '{key}' must be a string")
    return value


def normalize_question(raw: Any, number: int = 1) -> Question:
    """
    Validate one raw question object and return its canonical form.

    Raises:
        BankFormatError: with a message naming the question number
    """
    where = f"Question {number}"
    if not isinstance(raw, dict):
        raise BankFormatError(f"{where}: expected an object")
    if not raw.get("question") or not raw.get("options") or not raw.get("correct_answer"):
        raise BankFormatError(f"{where}: each question must have 'question', 'options', and 'correct_answer' fields")
    if not isinstance(raw["question"], str):
        raise BankFormatError(f"{where}: 'question' must be a string")

    options, correct_answer = normalize_options(raw["options"], raw["correct_answer"])
    if not isinstance(options, list) or len(options) < MIN_OPTIONS:
        raise BankFormatError(f"{where}: each question must have at least {MIN_OPTIONS} options")
    if not all(isinstance(o, (str, int, float)) for o in options):
        raise BankFormatError(f"{where}: options must be strings")
    options = [str(o) for o in options]

    if not isinstance(correct_answer, (str, list)) or not all(isinstance(a, (str, int, float)) for a in _as_list(correct_answer)):
        raise BankFormatError(f"{where}: 'correct_answer' must be a string or a list of strings")
    resolved = _resolve_correct_answer(correct_answer, options)
    if resolved is None:
        raise BankFormatError(f"{where}: correct_answer {correct_answer!r} does not match any of the options")

    weight = raw.get("weight")
    if weight is not None and (isinstance(weight, bool) or not isinstance(weight, (int, float)) or weight < 0):
        raise BankFormatError(f"{where}: 'weight' must be a non-negative number")

    difficulty = raw.get("difficulty")
    if isinstance(difficulty, str) and difficulty.lower() in DIFFICULTIES:
        difficulty = difficulty.lower()
    else:
        difficulty = None

    references = raw.get("references") or []
    if not isinstance(references, list):
        references = [references]

    return Question(
        question=raw["question"],
        options=options,
        correct_answer=resolved,
        explanation=_optional_text(raw, "explanation", where),
        hint=_optional_text(raw, "hint", where),
        section=_optional_text(raw, "section", where),
        weight=weight,
        difficulty=difficulty,
        references=[str(r) for r in references],
    )


def _as_list(value: Union[str, List]) -> List:
    return value if isinstance(value, list) else [value]


def extract_questions(data: Any) -> List[Any]:
    """Resolve an upload to its raw question list (array, {"questions": [...]}, or one question)."""
    if isinstance(data, list):
        questions = data
    elif isinstance(data, dict) and isinstance(data.get("questions"), list):
        questions = data["questions"]
    elif isinstance(data, dict) and data.get("question"):
        questions = [data]
    else:
        raise BankFormatError("Invalid format: Expected an array of questions or an object with a 'questions' array")
    if not questions:
        raise BankFormatError("Invalid format: the file contains no questions")
    return questions


def _parse_sections(raw: Any) -> List[ExamSection]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise BankFormatError("'sections' must be a list")
    sections = []
    for i, s in enumerate(raw, 1):
        if not isinstance(s, dict) or not isinstance(s.get("name"), str) or not s["name"]:
            raise BankFormatError(f"Section {i}: each section needs a 'name'")
        weight = s.get("weight", 0)
        if isinstance(weight, bool) or not isinstance(weight, (int, float)):
            raise BankFormatError(f"Section {i}: 'weight' must be a number")
        sections.append(ExamSection.from_dict(s))
    return sections


def _parse_settings(data: Any) -> Dict:
    """Bank-level settings carried by object-shaped files."""
    if not isinstance(data, dict):
        return {}
    passing_score = data.get("passingScore")
    if passing_score is not None and (isinstance(passing_score, bool) or not isinstance(passing_score, (int, float)) or not 0 <= passing_score <= 100):
        raise BankFormatError("'passingScore' must be a percentage between 0 and 100")
    time_limit = data.get("timeLimit")
    if time_limit is not None and (isinstance(time_limit, bool) or not isinstance(time_limit, (int, float)) or time_limit <= 0):
        raise BankFormatError("'timeLimit' must be a positive number of minutes")
    return {
        "sections": _parse_sections(data.get("sections")),
        "shuffle_questions": bool(data.get("shuffleQuestions", False)),
        "shuffle_options": bool(data.get("shuffleOptions", False)),
        "passing_score": passing_score,
        "time_limit": int(time_limit) if time_limit is not None else None,
    }


def parse_upload(text: str, filename: str, bank_id: Optional[str] = None) -> QuestionBank:
    """
    Build a new bank from an uploaded file. All-or-nothing: any invalid
    question rejects the whole file.

    Args:
        text: File contents
        filename: Original file name, used for the bank name
        bank_id: Id to assign (a new uuid when omitted)

    Raises:
        BankFormatError: on malformed JSON or any contract violation
    """
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise BankFormatError(f"Failed to parse JSON file: {e}") from e

    raw_questions = extract_questions(data)
    questions = [normalize_question(q, i) for i, q in enumerate(raw_questions, 1)]
    settings = _parse_settings(data)

    name = data.get("name") if isinstance(data, dict) and isinstance(data.get("name"), str) and "questions" in data else None
    bank = QuestionBank(
        id=bank_id or str(uuid4()),
        name=name or bank_name_from_filename(filename),
        description=f"Uploaded from {Path(filename).name}",
        questions=questions,
        date_added=utcnow_iso(),
        **settings,
    )
    logger.info(f"Parsed upload {filename}: {len(questions)} questions")
    return bank


def normalize_bank(data: Any, default_id: Optional[str] = None, default_date: Optional[str] = None) -> QuestionBank:
    """
    Validate a full bank object (served, static or imported). A bare array
    is read as the bank's question list.

    Raises:
        BankFormatError: when the object is not a usable bank
    """
    if isinstance(data, list):
        data = {"questions": data}
    if not isinstance(data, dict):
        raise BankFormatError("Question bank must be an object")
    bank_id = data.get("id") or default_id
    if not bank_id:
        raise BankFormatError("Question bank has no 'id'")
    if not isinstance(data.get("questions"), list) or not data["questions"]:
        raise BankFormatError(f"Question bank {bank_id}: missing 'questions' array")

    try:
        questions = [normalize_question(q, i) for i, q in enumerate(data["questions"], 1)]
    except BankFormatError as e:
        raise BankFormatError(f"Question bank {bank_id}: {e}") from e

    name = data.get("name") if isinstance(data.get("name"), str) and data.get("name") else bank_name_from_filename(str(bank_id))
    return QuestionBank(
        id=str(bank_id),
        name=name,
        description=data.get("description") if isinstance(data.get("description"), str) else None,
        questions=questions,
        date_added=data.get("dateAdded") or default_date or utcnow_iso(),
        **_parse_settings(data),
    )


def clean_question_dict(raw: Dict) -> Dict:
    """
    Tidy a raw question in place-compatible form: collapse whitespace in
    text fields and convert keyed options. Unknown keys are preserved.
    """
    cleaned = dict(raw)
    options, correct_answer = normalize_options(raw.get("options"), raw.get("correct_answer"))
    if isinstance(raw.get("question"), str):
        cleaned["question"] = clean_text(raw["question"])
    if isinstance(options, list):
        cleaned["options"] = [clean_text(o) if isinstance(o, str) else o for o in options]
    if isinstance(correct_answer, list):
        cleaned["correct_answer"] = [clean_text(a) if isinstance(a, str) else a for a in correct_answer]
    elif isinstance(correct_answer, str):
        cleaned["correct_answer"] = clean_text(correct_answer)
    for key in ("explanation", "hint"):
        if isinstance(raw.get(key), str):
            cleaned[key] = clean_text(raw[key])
    return cleaned
