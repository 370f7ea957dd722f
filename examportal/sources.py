"""
Question bank sources.

Remote: the bank API first, then the static manifest plus one request per
bank file. Local: every *.json file of a bank directory. Each tier is tried
once; a bank that fails to parse is skipped, never fatal.
"""
import json
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, List, Optional, Union

import requests
from dotenv import load_dotenv

from examportal.banks import BankFormatError, normalize_bank
from examportal.models import QuestionBank

load_dotenv()

logger = logging.getLogger(__name__)

SOURCE_URL = os.getenv("EXAM_PORTAL_SOURCE_URL", "http://localhost:8000")
REQUEST_TIMEOUT = float(os.getenv("EXAM_PORTAL_REQUEST_TIMEOUT", "10"))
API_PATH = "/api/question-banks"
STATIC_PATH = "/bank"
MANIFEST_NAME = "manifest.json"


def _normalize_all(payloads: Iterable[Any], origin: str) -> List[QuestionBank]:
    banks = []
    for payload in payloads:
        try:
            banks.append(normalize_bank(payload))
        except BankFormatError as e:
            logger.warning(f"Skipping bank from {origin}: {e}")
    return banks


def fetch_from_api(session: requests.Session, base_url: str) -> List[QuestionBank]:
    """
    Raises:
        requests.RequestException / ValueError: when the API tier is unusable
    """
    response = session.get(f"{base_url}{API_PATH}", timeout=REQUEST_TIMEOUT)
    response.raise_for_status()
    payload = response.json()
    if not isinstance(payload, list):
        raise ValueError("bank API did not return a list")
    return _normalize_all(payload, origin=f"{base_url}{API_PATH}")


def fetch_from_manifest(session: requests.Session, base_url: str) -> List[QuestionBank]:
    """
    Raises:
        requests.RequestException / ValueError: when the manifest itself is unusable
    """
    manifest_url = f"{base_url}{STATIC_PATH}/{MANIFEST_NAME}"
    response = session.get(manifest_url, timeout=REQUEST_TIMEOUT)
    response.raise_for_status()
    manifest = response.json()
    if not isinstance(manifest, list):
        raise ValueError("manifest is not a list")

    banks = []
    for item in manifest:
        file_name = item.get("file") if isinstance(item, dict) else None
        if not file_name:
            logger.warning(f"Skipping manifest entry without 'file': {item!r}")
            continue
        try:
            r = session.get(f"{base_url}{STATIC_PATH}/{file_name}", timeout=REQUEST_TIMEOUT)
            r.raise_for_status()
            default_id = Path(file_name).stem
            banks.append(normalize_bank(r.json(), default_id=default_id))
        except (requests.RequestException, ValueError) as e:
            # BankFormatError and JSON decode errors are both ValueErrors
            logger.warning(f"Failed to load bank {file_name}: {e}")
    return banks


def fetch_question_banks(base_url: Optional[str] = None, session: Optional[requests.Session] = None) -> List[QuestionBank]:
    """
    Fetch banks from the API, falling back to the static manifest.

    Returns:
        Parsed banks; empty when every tier fails
    """
    base_url = (base_url or SOURCE_URL).rstrip("/")
    session = session or requests.Session()
    try:
        banks = fetch_from_api(session, base_url)
        logger.info(f"Loaded {len(banks)} banks from {base_url}{API_PATH}")
        return banks
    except (requests.RequestException, ValueError) as e:
        logger.info(f"Bank API not available ({e}), trying static files")

    try:
        banks = fetch_from_manifest(session, base_url)
        logger.info(f"Loaded {len(banks)} banks from static manifest")
        return banks
    except (requests.RequestException, ValueError) as e:
        logger.warning(f"Error fetching question banks from static files: {e}")
        return []


def read_bank_file(path: Union[str, Path]) -> QuestionBank:
    """
    Load one bank file; id defaults to the file stem and dateAdded to its mtime.

    Raises:
        OSError, BankFormatError
    """
    path = Path(path)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise BankFormatError(f"{path.name}: invalid JSON ({e})") from e
    mtime = datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc)
    return normalize_bank(
        data,
        default_id=path.stem,
        default_date=mtime.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
    )


def bank_files(bank_dir: Union[str, Path]) -> List[Path]:
    bank_dir = Path(bank_dir)
    if not bank_dir.is_dir():
        return []
    return sorted(p for p in bank_dir.glob("*.json") if p.name != MANIFEST_NAME)


def load_bank_directory(bank_dir: Union[str, Path]) -> List[QuestionBank]:
    """Load every bank file of a directory, skipping the ones that fail."""
    banks = []
    for path in bank_files(bank_dir):
        try:
            banks.append(read_bank_file(path))
        except (OSError, BankFormatError) as e:
            logger.warning(f"Skipping {path.name}: {e}")
    return banks
