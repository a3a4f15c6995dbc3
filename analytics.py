"""Attempt history aggregation for the dashboard and analytics pages."""
from typing import Dict, List

import db
from db import RecordStore
from engine import MIXED_CHAPTER

# Accuracy bands (percent)
MASTERY_THRESHOLD = 70
FAIR_THRESHOLD = 40


def attempt_percentage(attempt: Dict) -> int:
    total = attempt.get("total") or 0
    return round(attempt.get("score", 0) / total * 100) if total > 0 else 0


def accuracy_band(accuracy: float) -> str:
    """strong >= 70, fair >= 40, weak below."""
    if accuracy >= MASTERY_THRESHOLD:
        return "strong"
    if accuracy >= FAIR_THRESHOLD:
        return "fair"
    return "weak"


def chapter_accuracy(attempts: List[Dict]) -> List[Dict]:
    """
    Sum score and total per chapter label across attempts.

    Returns:
        [{chapter, correct, total, accuracy}] in first-seen order; accuracy is a rounded percent
    """
    stats: Dict[str, Dict[str, int]] = {}
    for a in attempts:
        key = a.get("chapter") or MIXED_CHAPTER
        entry = stats.setdefault(key, {"correct": 0, "total": 0})
        entry["correct"] += a.get("score", 0)
        entry["total"] += a.get("total", 0)

    rows = []
    for chapter, s in stats.items():
        accuracy = round(s["correct"] / s["total"] * 100) if s["total"] > 0 else 0
        rows.append({"chapter": chapter, "correct": s["correct"], "total": s["total"], "accuracy": accuracy})
    return rows


def mastery_summary(rows: List[Dict]) -> Dict[str, int]:
    """Chapters at or above the mastery threshold out of all chapters attempted."""
    return {
        "mastered": sum(1 for r in rows if r["accuracy"] >= MASTERY_THRESHOLD),
        "total": len(rows),
    }


def dashboard_stats(store: RecordStore) -> Dict[str, int]:
    """Question count, attempt count and mean attempt score (percent)."""
    attempts = db.get_attempts(store)
    ratios = [a["score"] / a["total"] for a in attempts if a.get("total")]
    avg = round(sum(ratios) / len(attempts) * 100) if attempts else 0
    return {
        "total_questions": db.get_question_count(store),
        "total_attempts": len(attempts),
        "avg_score": avg,
    }


def recent_attempts(store: RecordStore, limit: int = 3) -> List[Dict]:
    attempts = db.get_attempts(store)
    attempts.sort(key=lambda a: a.get("timestamp", 0), reverse=True)
    return attempts[:limit]
