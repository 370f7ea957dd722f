"""Local store CRUD for banks, attempts, the current session and stats. Store is cached via Streamlit."""
import json
import logging
import os
from typing import Dict, List, Optional, Tuple

import streamlit as st
from dotenv import load_dotenv

from examportal.banks import BankFormatError, normalize_bank
from examportal.engine import ExamSession
from examportal.models import ExamAttempt, QuestionBank, UserStats
from examportal.scoring import round_half_up
from examportal.store import JsonFileStore, KeyValueStore

load_dotenv()

log = logging.getLogger(__name__)

STORAGE_KEYS = {
    "question_banks": "exam_portal_question_banks",
    "attempts": "exam_portal_attempts",
    "current_session": "exam_portal_current_session",
    "user_stats": "exam_portal_user_stats",
}


def _env_store() -> KeyValueStore:
    path = os.environ.get("EXAM_PORTAL_DATA_PATH", ".exam_portal/storage.json")
    return JsonFileStore(path)


@st.cache_resource
def get_store() -> KeyValueStore:
    return _env_store()


def get_store_uncached() -> KeyValueStore:
    """For CLI/scripts (no Streamlit context)."""
    return _env_store()


def _read_json(store: KeyValueStore, bucket: str):
    raw = store.get_item(STORAGE_KEYS[bucket])
    if raw is None:
        return None
    return json.loads(raw)


def _write_json(store: KeyValueStore, bucket: str, value) -> None:
    store.set_item(STORAGE_KEYS[bucket], json.dumps(value))


# --- Question banks ---

def get_question_banks(store: KeyValueStore) -> List[QuestionBank]:
    try:
        data = _read_json(store, "question_banks") or []
        return [QuestionBank.from_dict(b) for b in data]
    except (ValueError, KeyError, TypeError) as e:
        log.warning("Stored question banks are unreadable, treating as empty: %s", e)
        return []


def _write_banks(store: KeyValueStore, banks: List[QuestionBank]) -> None:
    _write_json(store, "question_banks", [b.to_dict() for b in banks])


def save_question_bank(store: KeyValueStore, bank: QuestionBank) -> None:
    """Insert, or replace the bank with the same id."""
    banks = get_question_banks(store)
    for i, existing in enumerate(banks):
        if existing.id == bank.id:
            banks[i] = bank
            break
    else:
        banks.append(bank)
    _write_banks(store, banks)


def delete_question_bank(store: KeyValueStore, bank_id: str) -> None:
    _write_banks(store, [b for b in get_question_banks(store) if b.id != bank_id])


def get_question_bank_by_id(store: KeyValueStore, bank_id: str) -> Optional[QuestionBank]:
    return next((b for b in get_question_banks(store) if b.id == bank_id), None)


def merge_question_banks(store: KeyValueStore, banks: List[QuestionBank]) -> int:
    """Add fetched banks whose id is not stored yet. Returns how many were added."""
    existing = get_question_banks(store)
    known = {b.id for b in existing}
    new_banks = [b for b in banks if b.id not in known]
    if new_banks:
        _write_banks(store, existing + new_banks)
        log.info("Added %d new question banks", len(new_banks))
    return len(new_banks)


# --- Attempts ---

def get_attempts(store: KeyValueStore) -> List[ExamAttempt]:
    """All attempts, newest first."""
    try:
        data = _read_json(store, "attempts") or []
        return [ExamAttempt.from_dict(a) for a in data]
    except (ValueError, KeyError, TypeError) as e:
        log.warning("Stored attempts are unreadable, treating as empty: %s", e)
        return []


def save_attempt(store: KeyValueStore, attempt: ExamAttempt) -> None:
    """Upsert by id (new attempts go first), then recompute user stats."""
    attempts = get_attempts(store)
    for i, existing in enumerate(attempts):
        if existing.id == attempt.id:
            log.warning("Attempt %s already saved, replacing it", attempt.id)
            attempts[i] = attempt
            break
    else:
        attempts.insert(0, attempt)
    _write_json(store, "attempts", [a.to_dict() for a in attempts])
    update_user_stats(store)


def get_attempts_by_bank_id(store: KeyValueStore, bank_id: str) -> List[ExamAttempt]:
    return [a for a in get_attempts(store) if a.question_bank_id == bank_id]


def get_attempt_by_id(store: KeyValueStore, attempt_id: str) -> Optional[ExamAttempt]:
    return next((a for a in get_attempts(store) if a.id == attempt_id), None)


def get_best_score(store: KeyValueStore, bank_id: str) -> Optional[int]:
    scores = [a.score for a in get_attempts_by_bank_id(store, bank_id) if a.completed]
    return max(scores) if scores else None


def get_last_attempt_date(store: KeyValueStore, bank_id: str) -> Optional[str]:
    attempts = [a for a in get_attempts_by_bank_id(store, bank_id) if a.completed]
    return attempts[0].end_time if attempts else None


# --- Current session ---

def get_current_session(store: KeyValueStore, bank: Optional[QuestionBank] = None) -> Optional[Dict]:
    """
    The persisted session snapshot (plain dict), or None.

    With a bank, only a snapshot belonging to that bank is returned.
    """
    try:
        data = _read_json(store, "current_session")
    except ValueError as e:
        log.warning("Stored session is unreadable, ignoring it: %s", e)
        return None
    if not isinstance(data, dict):
        return None
    if bank is not None and str(data.get("questionBankId")) != bank.id:
        return None
    return data


def save_current_session(store: KeyValueStore, session: Optional[ExamSession]) -> None:
    if session is None:
        clear_current_session(store)
        return
    _write_json(store, "current_session", session.to_dict())


def clear_current_session(store: KeyValueStore) -> None:
    store.remove_item(STORAGE_KEYS["current_session"])


checkpoint_session = save_current_session


def resume_or_start(store: KeyValueStore, bank: QuestionBank, mode: str) -> Tuple[ExamSession, Optional[Dict]]:
    """
    Resume the stored session for this bank and mode, or start a fresh one.

    Only one session slot exists: starting fresh overwrites it.

    Returns:
        (session, replaced) where replaced is the snapshot of a session for a
        different bank/mode that was just discarded, else None
    """
    snapshot = get_current_session(store)
    replaced = None
    if snapshot is not None:
        if str(snapshot.get("questionBankId")) == bank.id and snapshot.get("mode") == mode:
            try:
                session = ExamSession.from_dict(snapshot, bank)
                log.info("Resuming session %s", session.session_id)
                return session, None
            except (ValueError, KeyError, TypeError) as e:
                log.warning("Stored session cannot be resumed, starting fresh: %s", e)
        else:
            replaced = snapshot
            log.warning(
                "Replacing unfinished %s session on %s",
                snapshot.get("mode"), snapshot.get("questionBankName") or snapshot.get("questionBankId"),
            )

    session = ExamSession.start(bank, mode)
    save_current_session(store, session)
    return session, replaced


def submit_session(store: KeyValueStore, session: ExamSession) -> ExamAttempt:
    """Score the session, persist the attempt, drop the session. Stats are recomputed."""
    attempt = session.build_attempt()
    save_attempt(store, attempt)
    clear_current_session(store)
    return attempt


def discard_session(store: KeyValueStore) -> None:
    clear_current_session(store)
    log.info("Discarded current session")


# --- User stats ---

def get_user_stats(store: KeyValueStore) -> UserStats:
    try:
        data = _read_json(store, "user_stats")
        return UserStats.from_dict(data) if isinstance(data, dict) else UserStats()
    except (ValueError, TypeError) as e:
        log.warning("Stored stats are unreadable, using defaults: %s", e)
        return UserStats()


def compute_user_stats(attempts: List[ExamAttempt]) -> UserStats:
    completed = [a for a in attempts if a.completed]
    return UserStats(
        total_attempts=len(completed),
        total_questions_answered=sum(a.total_questions for a in completed),
        total_correct=sum(a.correct_count for a in completed),
        average_score=round_half_up(sum(a.score for a in completed) / len(completed)) if completed else 0,
        last_attempt_date=completed[0].end_time if completed else None,
    )


def update_user_stats(store: KeyValueStore) -> UserStats:
    stats = compute_user_stats(get_attempts(store))
    _write_json(store, "user_stats", stats.to_dict())
    return stats


# --- Export / import ---

def export_all_data(store: KeyValueStore) -> str:
    data = {
        "questionBanks": [b.to_dict() for b in get_question_banks(store)],
        "attempts": [a.to_dict() for a in get_attempts(store)],
        "userStats": get_user_stats(store).to_dict(),
    }
    return json.dumps(data, indent=2)


def import_data(store: KeyValueStore, json_string: str) -> Tuple[int, int]:
    """
    Replace banks and attempts from an export document. Everything is
    validated before anything is written.

    Returns:
        (banks imported, attempts imported); a bucket absent from the
        document is left untouched and counts as 0

    Raises:
        BankFormatError: on malformed input (nothing is applied)
    """
    try:
        data = json.loads(json_string)
    except json.JSONDecodeError as e:
        raise BankFormatError(f"Import file is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise BankFormatError("Import file must be a JSON object")

    banks = attempts = None
    if data.get("questionBanks") is not None:
        if not isinstance(data["questionBanks"], list):
            raise BankFormatError("'questionBanks' must be a list")
        banks = [normalize_bank(b) for b in data["questionBanks"]]
    if data.get("attempts") is not None:
        if not isinstance(data["attempts"], list):
            raise BankFormatError("'attempts' must be a list")
        try:
            attempts = [ExamAttempt.from_dict(a) for a in data["attempts"]]
        except (KeyError, TypeError, ValueError) as e:
            raise BankFormatError(f"Invalid attempt record: {e}") from e

    if banks is not None:
        _write_banks(store, banks)
    if attempts is not None:
        _write_json(store, "attempts", [a.to_dict() for a in attempts])
    update_user_stats(store)
    log.info("Imported %d banks, %d attempts", len(banks or []), len(attempts or []))
    return len(banks or []), len(attempts or [])


def clear_all_data(store: KeyValueStore) -> None:
    for key in STORAGE_KEYS.values():
        store.remove_item(key)
