#!/usr/bin/env python3
"""
Integration test: Importer + Engine + Store workflow.
Demonstrates:
1. Seeding and importing a bank
2. Practice session with resume after a "reload"
3. Scoring, history and analytics
"""
import json
import logging

import analytics
import db
from conftest import FakeClock, KeepOrder
from engine import PRACTICE, SessionEngine
from importer import import_questions
from init_db import SEED_QUESTIONS, seed_initial_data

logging.basicConfig(level=logging.INFO, format="%(message)s")
logger = logging.getLogger(__name__)


def test_study_workflow(store):
    """Full end-to-end run: seed, import, practice, reload, finish, analyse."""
    assert seed_initial_data(store) == len(SEED_QUESTIONS)
    assert seed_initial_data(store) == 0

    bank = [
        {"chapter": "Radiobiology", "text": "Most radiosensitive cell phase?", "options": ["G1", "S", "M"], "correctIndex": 2},
        {"chapter": "Radiobiology", "text": "Oxygen enhancement ratio for X-rays is about", "options": ["1", "3"], "correctIndex": 1},
    ]
    assert import_questions(store, json.dumps(bank), "radiobiology.json") == 2
    assert db.get_chapter_counts(store) == {"Radiation Physics": 3, "Radiobiology": 2}
    logger.info("✓ Bank ready: %s", db.get_chapter_counts(store))

    clock = FakeClock()
    engine = SessionEngine(store, rng=KeepOrder(), clock=clock).start(PRACTICE, "Radiobiology")
    engine.select_answer(2)
    assert engine.feedback()["is_correct"]
    engine.next()
    engine.toggle_bookmark()

    # Simulated page reload: a new engine picks up where the old one stopped
    reloaded = SessionEngine(store, rng=KeepOrder(), clock=clock).start(PRACTICE, "Radiobiology")
    assert reloaded.resumed
    assert reloaded.current_idx == 1
    assert reloaded.answers == [2, None]
    assert reloaded.is_bookmarked()

    reloaded.select_answer(0)
    clock.advance(60)
    result = reloaded.finish()
    logger.info("✓ Finished: %d/%d", result["score"], result["total"])
    assert (result["score"], result["total"], result["chapter"]) == (1, 2, "Radiobiology")
    assert db.get_active_session(store) is None

    rows = analytics.chapter_accuracy(db.get_attempts(store))
    assert rows == [{"chapter": "Radiobiology", "correct": 1, "total": 2, "accuracy": 50}]
    assert analytics.dashboard_stats(store)["avg_score"] == 50
    assert [q["text"] for q in db.get_bookmarked_questions(store)] == ["Oxygen enhancement ratio for X-rays is about"]
    assert len(db.search_questions(store, "gray")) == 1
