"""
Session Engine: question selection, navigation, answer recording and scoring.
One active session per installation; every change is mirrored to the record store.
"""
import logging
import os
import random
from enum import Enum
from typing import Callable, List, Dict, Optional

import db
from db import RecordStore

logger = logging.getLogger(__name__)

# Session composition
SESSION_SIZE = 20
MIXED_CHAPTER = "Mixed"
ACTIVE_SESSION_KEY = db.ACTIVE_SESSION_KEY

PRACTICE = "Practice"
MOCK = "Mock"
MODES = (PRACTICE, MOCK)


def _mock_duration_minutes() -> int:
    try:
        return max(0, int(os.environ.get("RADPREP_MOCK_MINUTES", "0")))
    except ValueError:
        logger.warning("RADPREP_MOCK_MINUTES is not an integer; mock sessions are untimed")
        return 0


# 0 = untimed
MOCK_DURATION_MINUTES = _mock_duration_minutes()


class SessionState(str, Enum):
    UNINITIALIZED = "uninitialized"
    LOADING = "loading"
    ACTIVE = "active"
    COMPLETE = "complete"


class NoQuestionsAvailable(Exception):
    """No question in the bank matches the requested chapter."""

    def __init__(self, chapter: Optional[str] = None):
        self.chapter = chapter
        where = f"chapter '{chapter}'" if chapter else "the question bank"
        super().__init__(f"No questions available in {where}")


class InvalidTransition(Exception):
    """Operation not allowed in the engine's current state or position."""


def score_answers(questions: List[Dict], answers: List[Optional[int]]) -> int:
    """Count positions where the answer equals the correct index. None never matches."""
    return sum(
        1 for q, a in zip(questions, answers) if a is not None and a == q.get("correct_index")
    )


class SessionEngine:
    """Owns the single active quiz session."""

    def __init__(
        self,
        store: RecordStore,
        rng: Optional[random.Random] = None,
        clock: Optional[Callable[[], int]] = None,
        mock_duration_minutes: Optional[int] = None,
    ):
        """
        Args:
            store: Record store holding questions, attempts, bookmarks and the active session
            rng: Anything with shuffle(list); fixes the question draw in tests
            clock: Returns epoch milliseconds
            mock_duration_minutes: Time limit for Mock sessions (0 = untimed)
        """
        self.store = store
        self.rng = rng or random.Random()
        self.clock = clock or db.now_ms
        self.mock_duration_minutes = (
            MOCK_DURATION_MINUTES if mock_duration_minutes is None else mock_duration_minutes
        )

        self.state = SessionState.UNINITIALIZED
        self.mode: Optional[str] = None
        self.chapter: Optional[str] = None
        self.questions: List[Dict] = []
        self.answers: List[Optional[int]] = []
        self.current_idx = 0
        self.start_time: Optional[int] = None
        self.resumed = False
        self.last_attempt: Optional[Dict] = None

    # ============= Lifecycle =============

    def start(self, mode: str, chapter: Optional[str] = None) -> "SessionEngine":
        """
        Resume the stored session if it matches mode and chapter, otherwise draw a fresh one.

        Raises:
            NoQuestionsAvailable: the candidate pool is empty; nothing is written
            ValueError: unknown mode
        """
        if mode not in MODES:
            raise ValueError(f"Unknown mode: {mode!r}")
        chapter = chapter or None
        self.state = SessionState.LOADING
        try:
            stored = self._resume_candidate(db.get_active_session(self.store), mode, chapter)
            if stored is not None and self._resume(stored):
                self.resumed = True
            else:
                self._start_fresh(mode, chapter)
                self.resumed = False
        except BaseException:
            self.state = SessionState.UNINITIALIZED
            raise
        self.last_attempt = None
        self.state = SessionState.ACTIVE
        return self

    @staticmethod
    def _resume_candidate(stored: Optional[Dict], mode: str, chapter: Optional[str]) -> Optional[Dict]:
        """The stored session if it belongs to this mode and chapter; a mismatch is stale."""
        if stored is None:
            return None
        if stored.get("mode") == mode and (stored.get("chapter") or None) == chapter:
            return stored
        logger.info(
            "Discarding stale session (%s/%s) for %s/%s",
            stored.get("mode"), stored.get("chapter"), mode, chapter,
        )
        return None

    def _resume(self, stored: Dict) -> bool:
        found = self.store.questions.bulk_get(stored["question_ids"])
        answers = list(stored.get("answers") or [None] * len(found))
        # Questions deleted since the session was saved drop out together with their answer slots.
        kept = [(q, a) for q, a in zip(found, answers) if q is not None]
        if not kept:
            logger.info("Stored session has no remaining questions; starting fresh")
            return False
        if len(kept) < len(found):
            logger.warning("Resumed session lost %d deleted question(s)", len(found) - len(kept))
        self.mode = stored["mode"]
        self.chapter = stored.get("chapter") or None
        self.questions = [q for q, _ in kept]
        self.answers = [a for _, a in kept]
        self.current_idx = min(max(int(stored.get("current_idx", 0)), 0), len(self.questions) - 1)
        self.start_time = stored.get("start_time") or self.clock()
        if len(kept) < len(found):
            self._persist()
        logger.info("Resumed %s session at question %d/%d", self.mode, self.current_idx + 1, len(self.questions))
        return True

    def _start_fresh(self, mode: str, chapter: Optional[str]):
        if chapter:
            pool = db.get_questions_by_chapter(self.store, chapter)
        else:
            pool = db.get_questions(self.store)
        if not pool:
            logger.warning("No questions available for %s session (chapter=%s)", mode, chapter)
            raise NoQuestionsAvailable(chapter)

        self.rng.shuffle(pool)
        selected = pool[: min(SESSION_SIZE, len(pool))]

        self.mode = mode
        self.chapter = chapter
        self.questions = selected
        self.answers = [None] * len(selected)
        self.current_idx = 0
        self.start_time = self.clock()

        with self.store.transaction():
            db.clear_active_session(self.store)
            db.put_active_session(self.store, self.to_record())
        logger.info("Started %s session: %d questions (chapter=%s)", mode, len(selected), chapter or MIXED_CHAPTER)

    def finish(self) -> Dict:
        """
        Score the session, append the attempt and delete the active session in one transaction.

        Unanswered questions count as wrong.
        """
        self._require(SessionState.ACTIVE)
        attempt = {
            "timestamp": self.clock(),
            "chapter": self.chapter or MIXED_CHAPTER,
            "score": score_answers(self.questions, self.answers),
            "total": len(self.questions),
            "mode": self.mode,
            "question_ids": [q["id"] for q in self.questions],
            "user_answers": list(self.answers),
        }
        with self.store.transaction():
            db.add_attempt(self.store, attempt)
            db.clear_active_session(self.store)
        self.last_attempt = attempt
        self.state = SessionState.COMPLETE
        logger.info("Session finished: %d/%d (%s, %s)", attempt["score"], attempt["total"], attempt["mode"], attempt["chapter"])
        return attempt

    def review_again(self) -> "SessionEngine":
        """Replay the just-finished questions in the same order with answers cleared."""
        self._require(SessionState.COMPLETE)
        self.current_idx = 0
        self.answers = [None] * len(self.questions)
        self.start_time = self.clock()
        with self.store.transaction():
            db.clear_active_session(self.store)
            db.put_active_session(self.store, self.to_record())
        self.state = SessionState.ACTIVE
        return self

    # ============= Navigation and answers =============

    def next(self):
        self._require(SessionState.ACTIVE)
        if self.current_idx >= len(self.questions) - 1:
            raise InvalidTransition("Already at the last question")
        self.current_idx += 1
        self._persist()

    def previous(self):
        self._require(SessionState.ACTIVE)
        if self.current_idx <= 0:
            raise InvalidTransition("Already at the first question")
        self.current_idx -= 1
        self._persist()

    def select_answer(self, option_index: int) -> bool:
        """
        Record an answer for the current question.

        Mock answers can be changed until the session finishes; a Practice answer is locked
        once given. Returns True if the answer was recorded.
        """
        self._require(SessionState.ACTIVE)
        question = self.current_question
        if isinstance(option_index, bool) or not isinstance(option_index, int):
            raise ValueError(f"Option must be an integer index, got {option_index!r}")
        if self.mode == PRACTICE and self.answers[self.current_idx] is not None:
            return False
        n_options = len(question.get("options") or [])
        if not 0 <= option_index < n_options:
            raise ValueError(f"Option {option_index} out of range for {n_options} options")
        self.answers[self.current_idx] = option_index
        self._persist()
        return True

    def feedback(self) -> Optional[Dict]:
        """Practice-mode result for the current question once it has been answered."""
        if self.state != SessionState.ACTIVE or self.mode != PRACTICE:
            return None
        selected = self.answers[self.current_idx]
        if selected is None:
            return None
        q = self.current_question
        return {
            "selected": selected,
            "correct_index": q.get("correct_index"),
            "is_correct": selected == q.get("correct_index"),
            "explanation": q.get("explanation", ""),
        }

    def toggle_bookmark(self) -> bool:
        if not self.questions:
            raise InvalidTransition("No question to bookmark")
        return db.toggle_bookmark(self.store, self.current_question["id"])

    def is_bookmarked(self) -> bool:
        return bool(self.questions) and db.is_bookmarked(self.store, self.current_question["id"])

    # ============= Read-only views =============

    @property
    def current_question(self) -> Optional[Dict]:
        if not self.questions:
            return None
        return self.questions[self.current_idx]

    @property
    def is_first(self) -> bool:
        return self.current_idx == 0

    @property
    def is_last(self) -> bool:
        return self.current_idx == len(self.questions) - 1

    @property
    def answered_count(self) -> int:
        return sum(1 for a in self.answers if a is not None)

    @property
    def progress(self) -> float:
        return (self.current_idx + 1) / len(self.questions) if self.questions else 0.0

    def elapsed_seconds(self) -> float:
        if self.start_time is None:
            return 0.0
        return max(0, self.clock() - self.start_time) / 1000

    def time_remaining(self) -> Optional[float]:
        """Seconds left in a timed Mock session, None when untimed."""
        if self.mode != MOCK or not self.mock_duration_minutes:
            return None
        return max(0.0, self.mock_duration_minutes * 60 - self.elapsed_seconds())

    def is_expired(self) -> bool:
        remaining = self.time_remaining()
        return remaining is not None and remaining <= 0

    def to_record(self) -> Dict:
        return {
            "id": ACTIVE_SESSION_KEY,
            "mode": self.mode,
            "chapter": self.chapter,
            "question_ids": [q["id"] for q in self.questions],
            "current_idx": self.current_idx,
            "answers": list(self.answers),
            "start_time": self.start_time,
        }

    # ============= Internals =============

    def _persist(self):
        db.put_active_session(self.store, self.to_record())

    def _require(self, state: SessionState):
        if self.state != state:
            raise InvalidTransition(f"Engine is {self.state.value}, expected {state.value}")
