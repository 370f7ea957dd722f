"""
Write bank/manifest.json so the bank files can be served statically.

Run: python build_manifest.py [--bank-dir bank] [--out dist] [--dry-run]
"""
import argparse
import json
import logging
import os
import shutil
import sys
from pathlib import Path
from typing import Dict, List, Optional

from dotenv import load_dotenv

from examportal.banks import BankFormatError
from examportal.sources import MANIFEST_NAME, bank_files, read_bank_file

load_dotenv()

logger = logging.getLogger(__name__)


def build_manifest(bank_dir: Path) -> List[Dict]:
    """One entry per valid bank file; invalid files are left out with a warning."""
    entries = []
    for path in bank_files(bank_dir):
        try:
            bank = read_bank_file(path)
        except (OSError, BankFormatError) as e:
            logger.warning(f"Leaving {path.name} out of the manifest: {e}")
            continue
        entries.append({"file": path.name, "id": bank.id, "name": bank.name, "questionCount": len(bank.questions)})
    return entries


def write_manifest(bank_dir: Path, out: Optional[Path] = None, dry_run: bool = False) -> List[Dict]:
    """
    Args:
        bank_dir: Directory holding the bank files
        out: When given, copy the listed files and manifest into out/bank
        dry_run: Print the manifest only
    """
    if not bank_dir.is_dir():
        raise FileNotFoundError(f"Bank directory not found: {bank_dir}")
    entries = build_manifest(bank_dir)
    document = json.dumps(entries, indent=2)
    if dry_run:
        print(document)
        return entries

    target = bank_dir
    if out:
        target = out / "bank"
        target.mkdir(parents=True, exist_ok=True)
        for entry in entries:
            shutil.copy2(bank_dir / entry["file"], target / entry["file"])
    (target / MANIFEST_NAME).write_text(document + "\n", encoding="utf-8")
    print(f"Wrote {len(entries)} entries to {target / MANIFEST_NAME}")
    return entries


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Build the static bank manifest.")
    parser.add_argument("--bank-dir", type=Path, default=Path(os.getenv("EXAM_PORTAL_BANK_DIR", "bank")))
    parser.add_argument("--out", type=Path, default=None, help="Copy banks + manifest into OUT/bank")
    parser.add_argument("--dry-run", action="store_true", help="Print the manifest, write nothing")
    args = parser.parse_args(argv)
    try:
        write_manifest(args.bank_dir, out=args.out, dry_run=args.dry_run)
    except FileNotFoundError as e:
        logger.error(str(e))
        return 1
    return 0


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
    sys.exit(main())
