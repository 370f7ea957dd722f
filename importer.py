"""Load bank files into the local store; export and restore the whole store as one JSON document."""
import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from db import export_all_data, get_store_uncached, import_data, save_question_bank
from examportal.banks import BankFormatError, parse_upload

logger = logging.getLogger(__name__)


def run_upload(paths: List[Path], dry_run: bool = False, store=None) -> int:
    """
    Upload bank files the way the UI does. Every file is parsed first; a
    single bad file aborts the run before anything is saved.

    Returns:
        Number of banks saved (or that would be saved)
    """
    banks = []
    for path in paths:
        if not path.exists():
            raise FileNotFoundError(f"Bank file not found: {path}")
        banks.append(parse_upload(path.read_text(encoding="utf-8"), path.name))

    if dry_run:
        for bank in banks:
            print(f"Dry run: would add '{bank.name}' ({len(bank.questions)} questions)")
        return len(banks)

    store = store or get_store_uncached()
    for bank in banks:
        save_question_bank(store, bank)
        print(f"Added '{bank.name}' ({len(bank.questions)} questions) as {bank.id}")
    return len(banks)


def run_export(out: Optional[Path] = None, store=None) -> str:
    store = store or get_store_uncached()
    document = export_all_data(store)
    if out:
        out.write_text(document, encoding="utf-8")
        print(f"Exported to {out}")
    else:
        print(document)
    return document


def run_restore(path: Path, store=None):
    if not path.exists():
        raise FileNotFoundError(f"Export file not found: {path}")
    store = store or get_store_uncached()
    n_banks, n_attempts = import_data(store, path.read_text(encoding="utf-8"))
    print(f"Restored {n_banks} banks and {n_attempts} attempts from {path}")
    return n_banks, n_attempts


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Manage exam portal data in the local store.")
    sub = parser.add_subparsers(dest="command", required=True)

    p_upload = sub.add_parser("upload", help="Add question bank files")
    p_upload.add_argument("files", nargs="+", type=Path, help="Bank .json files")
    p_upload.add_argument("--dry-run", action="store_true", help="Validate only, do not save")

    p_export = sub.add_parser("export", help="Export banks, attempts and stats")
    p_export.add_argument("--out", type=Path, default=None, help="Write to file instead of stdout")

    p_restore = sub.add_parser("restore", help="Replace data from an export file")
    p_restore.add_argument("file", type=Path)

    args = parser.parse_args(argv)
    try:
        if args.command == "upload":
            run_upload(args.files, dry_run=args.dry_run)
        elif args.command == "export":
            run_export(args.out)
        else:
            run_restore(args.file)
    except (FileNotFoundError, UnicodeDecodeError, BankFormatError) as e:
        logger.error(str(e))
        return 1
    return 0


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
    sys.exit(main())
