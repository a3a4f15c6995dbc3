"""Import a question bank from .json (array or single object); export the bank back to JSON."""
import argparse
import json
import logging
import os
import sys
from datetime import date
from pathlib import Path

from db import RecordStore, StoreError, clear_questions, get_questions, get_store_uncached

logger = logging.getLogger(__name__)

MISSING_TEXT = "Missing text"


class InvalidImportError(ValueError):
    """The file is not valid JSON or does not hold question objects."""


def _correct_index(raw: dict) -> int:
    value = raw.get("correctIndex")
    if value is None:
        value = raw.get("correct_index")
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidImportError(f"correctIndex must be an integer, got {value!r}")
    return value


def _text(raw: dict, field: str, default: str) -> str:
    value = raw.get(field)
    if value is None or value == "":
        return default
    if not isinstance(value, str):
        raise InvalidImportError(f"{field} must be a string, got {type(value).__name__}")
    return value


def sanitize_question(raw, chapter_default: str) -> dict:
    """Map one file entry to a questions row, filling defaults for missing fields."""
    if not isinstance(raw, dict):
        raise InvalidImportError(f"Expected a question object, got {type(raw).__name__}")
    options = raw.get("options")
    if options is None:
        options = []
    if not isinstance(options, list):
        raise InvalidImportError(f"options must be a list, got {type(options).__name__}")
    return {
        "chapter": _text(raw, "chapter", chapter_default),
        "text": _text(raw, "text", MISSING_TEXT),
        "options": [str(o) for o in options],
        "correct_index": _correct_index(raw),
        "explanation": _text(raw, "explanation", ""),
    }


def parse_questions(raw_text: str, source_name: str) -> list[dict]:
    """
    Parse and sanitize a whole document before anything is written.

    The chapter of entries without one defaults to the source file name without extension.
    """
    try:
        data = json.loads(raw_text)
    except json.JSONDecodeError as e:
        raise InvalidImportError(f"Invalid JSON format: {e}") from e
    entries = data if isinstance(data, list) else [data]
    chapter_default = Path(source_name).stem
    return [sanitize_question(q, chapter_default) for q in entries]


def import_questions(store: RecordStore, raw_text: str, source_name: str) -> int:
    rows = parse_questions(raw_text, source_name)
    store.questions.bulk_add(rows)
    logger.info("Imported %d questions from %s", len(rows), source_name)
    return len(rows)


def import_file(store: RecordStore, path: Path) -> int:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"JSON not found: {path}")
    return import_questions(store, path.read_text(encoding="utf-8"), path.name)


def to_file_record(question: dict) -> dict:
    return {
        "id": question.get("id"),
        "chapter": question.get("chapter"),
        "text": question.get("text"),
        "options": question.get("options", []),
        "correctIndex": question.get("correct_index", 0),
        "explanation": question.get("explanation", ""),
    }


def export_questions(store: RecordStore) -> str:
    """The whole question table as a pretty-printed JSON array."""
    return json.dumps([to_file_record(q) for q in get_questions(store)], indent=2, ensure_ascii=False)


def export_filename(day: date | None = None) -> str:
    return f"radprep_export_{(day or date.today()).isoformat()}.json"


def run_import(path: Path, dry_run: bool = False, replace: bool = False):
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"JSON not found: {path}")
    if dry_run:
        rows = parse_questions(path.read_text(encoding="utf-8"), path.name)
        print(f"Dry run: would import {len(rows)} questions from {path}")
        if rows:
            print("Sample row:", rows[0])
        return
    store = get_store_uncached()
    if replace:
        # Parse first so an invalid file never empties the bank.
        rows = parse_questions(path.read_text(encoding="utf-8"), path.name)
        with store.transaction():
            clear_questions(store)
            store.questions.bulk_add(rows)
        print(f"Replaced question bank with {len(rows)} questions from {path}")
        return
    n = import_file(store, path)
    print(f"Imported {n} questions from {path}")


def run_export(out: Path | None = None):
    store = get_store_uncached()
    out = Path(out) if out else Path(export_filename())
    out.write_text(export_questions(store), encoding="utf-8")
    print(f"Exported {store.questions.count()} questions to {out}")


def main(argv: list[str] | None = None):
    logging.basicConfig(
        level=os.environ.get("RADPREP_LOG_LEVEL", "INFO").upper(),
        format="%(levelname)s: %(message)s",
    )
    parser = argparse.ArgumentParser(description="Import or export the RadPrep question bank.")
    sub = parser.add_subparsers(dest="command", required=True)

    p_import = sub.add_parser("import", help="Add questions from a .json file")
    p_import.add_argument("json", help="Path to .json (array of questions or a single question)")
    p_import.add_argument("--dry-run", action="store_true", help="Parse only, do not write")
    p_import.add_argument("--replace", action="store_true", help="Clear the bank, then import (fresh import)")

    p_export = sub.add_parser("export", help="Write the whole bank to a .json file")
    p_export.add_argument("--out", default=None, help="Output path (default: radprep_export_<date>.json)")

    p_clear = sub.add_parser("clear", help="Delete every question in the bank")
    p_clear.add_argument("--yes", action="store_true", help="Confirm; the bank cannot be restored")

    args = parser.parse_args(argv)
    try:
        if args.command == "import":
            run_import(Path(args.json), dry_run=args.dry_run, replace=args.replace)
        elif args.command == "export":
            run_export(args.out)
        elif args.command == "clear":
            if not args.yes:
                parser.error("clear needs --yes")
            clear_questions(get_store_uncached())
            print("Question bank cleared")
    except (InvalidImportError, FileNotFoundError, StoreError) as e:
        logger.error("%s", e)
        sys.exit(1)


if __name__ == "__main__":
    main()
