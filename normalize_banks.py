"""
Tidy bank files in place: collapse whitespace/newlines in question text,
options, answers, explanation and hint; convert keyed options to lists.

Run: python normalize_banks.py [files or dirs ...] [--dry-run]
"""
import argparse
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any, List

from dotenv import load_dotenv

from examportal.banks import clean_question_dict
from examportal.sources import bank_files

load_dotenv()

logger = logging.getLogger(__name__)


def normalize_document(data: Any) -> Any:
    """Apply question cleanup to an array, a {"questions": [...]} object or a single question."""
    if isinstance(data, list):
        return [clean_question_dict(q) if isinstance(q, dict) else q for q in data]
    if isinstance(data, dict) and isinstance(data.get("questions"), list):
        cleaned = dict(data)
        cleaned["questions"] = normalize_document(data["questions"])
        return cleaned
    if isinstance(data, dict) and "question" in data:
        return clean_question_dict(data)
    return data


def normalize_file(path: Path, dry_run: bool = False) -> bool:
    """Returns True when the file changed (or would change)."""
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        logger.warning(f"Skipping {path.name}: invalid JSON ({e})")
        return False
    cleaned = normalize_document(data)
    if cleaned == data:
        return False
    if dry_run:
        print(f"Would update {path}")
    else:
        path.write_text(json.dumps(cleaned, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")
        print(f"Updated {path}")
    return True


def collect_paths(targets: List[Path]) -> List[Path]:
    paths = []
    for target in targets:
        if target.is_dir():
            paths.extend(bank_files(target))
        elif target.exists():
            paths.append(target)
        else:
            logger.warning(f"Not found: {target}")
    return paths


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Clean up question bank JSON files.")
    parser.add_argument("targets", nargs="*", type=Path, help="Bank files or directories (default: bank dir)")
    parser.add_argument("--dry-run", action="store_true", help="Only report files that would change")
    args = parser.parse_args(argv)
    targets = args.targets or [Path(os.getenv("EXAM_PORTAL_BANK_DIR", "bank"))]

    changed = sum(normalize_file(p, dry_run=args.dry_run) for p in collect_paths(targets))
    print(f"{changed} file(s) {'would change' if args.dry_run else 'updated'}")
    return 0


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
    sys.exit(main())
