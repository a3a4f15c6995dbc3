"""Import/export of question banks."""
import json
from datetime import date

import pytest

from importer import (
    MISSING_TEXT,
    InvalidImportError,
    export_filename,
    export_questions,
    import_file,
    import_questions,
    main,
    parse_questions,
)


def test_missing_correct_index_defaults_to_zero(store):
    raw = json.dumps([{"chapter": "Radiobiology", "text": "LD50/30?", "options": ["2 Gy", "4 Gy"]}])
    assert import_questions(store, raw, "bank.json") == 1
    q = store.questions.all()[0]
    assert q["correct_index"] == 0
    assert q["options"] == ["2 Gy", "4 Gy"]


def test_defaults_for_missing_fields():
    rows = parse_questions(json.dumps({"correctIndex": None}), "Radiation Physics.json")
    assert rows == [{
        "chapter": "Radiation Physics",
        "text": MISSING_TEXT,
        "options": [],
        "correct_index": 0,
        "explanation": "",
    }]


def test_empty_strings_fall_back_to_defaults():
    rows = parse_questions(json.dumps([{"chapter": "", "text": "", "explanation": None}]), "dosimetry.json")
    assert rows[0]["chapter"] == "dosimetry"
    assert rows[0]["text"] == MISSING_TEXT
    assert rows[0]["explanation"] == ""


def test_accepts_both_correct_index_spellings():
    rows = parse_questions(json.dumps([{"correctIndex": 2}, {"correct_index": 3}]), "x.json")
    assert [r["correct_index"] for r in rows] == [2, 3]


def test_incoming_ids_are_ignored(store):
    import_questions(store, json.dumps([{"id": 999, "text": "a"}, {"id": 999, "text": "b"}]), "x.json")
    ids = [q["id"] for q in store.questions.all()]
    assert len(set(ids)) == 2
    assert 999 not in ids


def test_invalid_json_writes_nothing(store):
    with pytest.raises(InvalidImportError):
        import_questions(store, '[{"text": "unterminated"', "broken.json")
    assert store.questions.count() == 0


def test_bad_entry_rejects_whole_document(store):
    raw = json.dumps([{"text": "fine"}, 42])
    with pytest.raises(InvalidImportError):
        import_questions(store, raw, "mixed.json")
    assert store.questions.count() == 0


def test_non_integer_correct_index_is_invalid():
    with pytest.raises(InvalidImportError):
        parse_questions(json.dumps({"correctIndex": "1"}), "x.json")


def test_import_file_uses_file_name_for_chapter(store, tmp_path):
    path = tmp_path / "Nuclear Medicine.json"
    path.write_text(json.dumps([{"text": "Tc-99m half-life?", "options": ["6 h", "66 h"]}]), encoding="utf-8")
    assert import_file(store, path) == 1
    assert store.questions.all()[0]["chapter"] == "Nuclear Medicine"


def test_import_file_missing(store, tmp_path):
    with pytest.raises(FileNotFoundError):
        import_file(store, tmp_path / "nope.json")


def test_export_is_pretty_json_that_imports_back(store):
    import_questions(store, json.dumps([{"chapter": "C", "text": "T", "options": ["a", "b"], "correctIndex": 1}]), "x.json")
    out = export_questions(store)
    assert out.startswith("[\n  {")
    exported = json.loads(out)
    assert exported[0]["correctIndex"] == 1
    assert exported[0]["id"] == store.questions.all()[0]["id"]

    import_questions(store, out, "backup.json")
    texts = [(q["chapter"], q["correct_index"]) for q in store.questions.all()]
    assert texts == [("C", 1), ("C", 1)]


def test_export_filename():
    assert export_filename(date(2026, 10, 19)) == "radprep_export_2026-10-19.json"


def test_cli_import_and_export(tmp_path, monkeypatch):
    monkeypatch.setenv("RADPREP_DB_PATH", str(tmp_path / "cli.db"))
    src = tmp_path / "Radiobiology.json"
    src.write_text(json.dumps([{"text": "a", "options": ["x", "y"]}, {"text": "b"}]), encoding="utf-8")
    main(["import", str(src)])
    out = tmp_path / "out.json"
    main(["export", "--out", str(out)])
    exported = json.loads(out.read_text(encoding="utf-8"))
    assert [q["chapter"] for q in exported] == ["Radiobiology", "Radiobiology"]


def test_cli_replace_keeps_bank_on_invalid_file(tmp_path, monkeypatch):
    monkeypatch.setenv("RADPREP_DB_PATH", str(tmp_path / "cli.db"))
    good = tmp_path / "good.json"
    good.write_text(json.dumps([{"text": "a"}]), encoding="utf-8")
    bad = tmp_path / "bad.json"
    bad.write_text("not json", encoding="utf-8")
    main(["import", str(good)])
    with pytest.raises(SystemExit):
        main(["import", str(bad), "--replace"])
    out = tmp_path / "out.json"
    main(["export", "--out", str(out)])
    assert len(json.loads(out.read_text(encoding="utf-8"))) == 1


@pytest.mark.parametrize("field, value", [("text", 42), ("chapter", 7), ("explanation", ["why"])])
def test_non_string_text_fields_reject_whole_document(store, field, value):
    raw = json.dumps([{"text": "One Gray is equal to:", "options": ["a", "b"]}, {field: value, "options": ["a", "b"]}])
    with pytest.raises(InvalidImportError):
        import_questions(store, raw, "bank.json")
    assert store.questions.count() == 0


def test_cli_store_failure_exits_with_error(tmp_path, monkeypatch):
    # A directory cannot be opened as a database file
    monkeypatch.setenv("RADPREP_DB_PATH", str(tmp_path))
    with pytest.raises(SystemExit) as exc:
        main(["export", "--out", str(tmp_path / "out.json")])
    assert exc.value.code == 1
