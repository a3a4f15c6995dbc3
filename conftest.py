"""Shared fixtures: a throwaway SQLite store and a deterministic question draw."""
import pytest

from db import RecordStore


class KeepOrder:
    """Shuffle stand-in that leaves the pool in bank order."""

    def shuffle(self, seq):
        pass


class ReverseOrder:
    def shuffle(self, seq):
        seq.reverse()


class FakeClock:
    def __init__(self, start_ms: int = 1_700_000_000_000):
        self.now = start_ms

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: float):
        self.now += int(seconds * 1000)


def make_question(chapter="Radiation Physics", text="Q", options=None, correct_index=0, explanation=""):
    return {
        "chapter": chapter,
        "text": text,
        "options": options if options is not None else ["A", "B", "C", "D"],
        "correct_index": correct_index,
        "explanation": explanation,
    }


@pytest.fixture
def store(tmp_path):
    s = RecordStore(tmp_path / "radprep_test.db")
    yield s
    s.close()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def radiation_bank(store):
    """Three 'Radiation Physics' questions with correct indices [0, 1, 1]."""
    rows = [make_question(text=f"Radiation {i}", correct_index=c) for i, c in enumerate([0, 1, 1])]
    store.questions.bulk_add(rows)
    return rows
