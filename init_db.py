"""Initialize the local RadPrep database and seed the starter questions."""
import logging
import os

from db import RecordStore, get_store_uncached

logger = logging.getLogger(__name__)

SEED_QUESTIONS = [
    {
        "chapter": "Radiation Physics",
        "text": "The unit of absorbed dose is:",
        "options": ["Gray", "Sievert", "Coulomb/kg", "Roentgen"],
        "correct_index": 0,
        "explanation": "Absorbed dose is measured in Gray (Gy), defined as joule per kilogram.",
    },
    {
        "chapter": "Radiation Physics",
        "text": "One Gray is equal to:",
        "options": ["1 J/kg", "100 rad", "1 Sv", "0.01 J/kg"],
        "correct_index": 0,
        "explanation": "1 Gray is defined as absorption of 1 joule of energy per kilogram of matter.",
    },
    {
        "chapter": "Radiation Physics",
        "text": "The SI unit of radioactivity is:",
        "options": ["Curie", "Becquerel", "Gray", "Sievert"],
        "correct_index": 1,
        "explanation": "Becquerel (Bq) represents one nuclear disintegration per second.",
    },
]


def seed_initial_data(store: RecordStore) -> int:
    """Add the starter questions when the bank is empty. Returns the number added."""
    if store.questions.count() > 0:
        return 0
    store.questions.bulk_add([dict(q) for q in SEED_QUESTIONS])
    logger.info("Seeded %d starter questions", len(SEED_QUESTIONS))
    return len(SEED_QUESTIONS)


if __name__ == "__main__":
    logging.basicConfig(
        level=os.environ.get("RADPREP_LOG_LEVEL", "INFO").upper(),
        format="%(levelname)s: %(message)s",
    )
    store = get_store_uncached()
    added = seed_initial_data(store)
    print(f"Database ready at {store.path} ({store.questions.count()} questions, {added} seeded)")
