"""RadPrep: local question bank, practice and mock sessions."""
import sys
from datetime import datetime
from pathlib import Path

# Ensure project root is in path
project_root = Path(__file__).resolve().parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

import streamlit as st

import analytics
import db
from db import StoreError, get_store
from engine import MOCK, PRACTICE, MIXED_CHAPTER, NoQuestionsAvailable, SessionEngine, SessionState
from importer import InvalidImportError, export_filename, export_questions, import_questions
from init_db import seed_initial_data

PAGES = ["Dashboard", "Session", "Search", "Analytics", "Bookmarks", "Data Vault"]
OPTION_LABELS = "ABCDEFGHIJ"

st.set_page_config(page_title="RadPrep", layout="wide")
st.sidebar.title("RadPrep")

store = get_store()
if "seeded" not in st.session_state:
    seed_initial_data(store)
    st.session_state["seeded"] = True

# Allow URL to open a specific page (e.g. after "Start session")
default_page = st.query_params.get("page", "Dashboard")
if default_page not in PAGES:
    default_page = "Dashboard"
page = st.sidebar.radio("Navigate", PAGES, index=PAGES.index(default_page), label_visibility="collapsed")


def go_to(target: str):
    st.query_params["page"] = target
    st.rerun()


def open_session(mode: str, chapter: str | None = None):
    """Hand the requested session to the Session page; resume happens in the engine."""
    st.session_state["session_request"] = {"mode": mode, "chapter": chapter}
    st.session_state.pop("engine", None)
    go_to("Session")


def format_time(ts_ms: int) -> str:
    return datetime.fromtimestamp(ts_ms / 1000).strftime("%d %b %Y %H:%M")


def run_and_rerun(action, *args):
    """Run an engine action and redraw; a failed save is reported on the page."""
    try:
        action(*args)
    except StoreError as e:
        st.error(f"Could not save your progress to the local database. {e}")
        return
    st.rerun()


# ----- Dashboard -----
if page == "Dashboard":
    st.header("Dashboard")
    try:
        stats = analytics.dashboard_stats(store)
        col1, col2, col3 = st.columns(3)
        with col1:
            st.metric("Questions in bank", stats["total_questions"])
        with col2:
            st.metric("Sessions completed", stats["total_attempts"])
        with col3:
            st.metric("Average score", f"{stats['avg_score']}%")

        col1, col2 = st.columns(2)
        with col1:
            if st.button("Mixed Practice", type="primary", use_container_width=True):
                open_session(PRACTICE)
        with col2:
            if st.button("Full Mock Exam", use_container_width=True):
                open_session(MOCK)

        active = db.get_active_session(store)
        if active:
            answered = sum(1 for a in active.get("answers", []) if a is not None)
            st.info(
                f"Unfinished {active['mode']} session ({active.get('chapter') or MIXED_CHAPTER}): "
                f"question {active['current_idx'] + 1} of {len(active['question_ids'])}, {answered} answered."
            )
            if st.button("Resume session"):
                open_session(active["mode"], active.get("chapter"))

        st.subheader("Question banks")
        chapters = db.get_chapter_counts(store)
        if not chapters:
            st.warning("No questions yet. Import a bank in the Data Vault.")
            if st.button("Go to Data Vault"):
                go_to("Data Vault")
        for name, count in chapters.items():
            c1, c2, c3 = st.columns([3, 1, 1])
            with c1:
                st.write(f"**{name}** · {count} questions")
            with c2:
                if st.button("Practice", key=f"practice_{name}"):
                    open_session(PRACTICE, name)
            with c3:
                if st.button("Mock", key=f"mock_{name}"):
                    open_session(MOCK, name)

        st.subheader("Recent history")
        for attempt in analytics.recent_attempts(store):
            pct = analytics.attempt_percentage(attempt)
            st.write(
                f"{pct}% · {attempt['chapter']} · {attempt['mode']} · "
                f"{attempt['score']}/{attempt['total']} · {format_time(attempt['timestamp'])}"
            )
    except StoreError as e:
        st.error(f"Could not read the local database. Check RADPREP_DB_PATH. {e}")

# ----- Session -----
elif page == "Session":
    request = st.session_state.get("session_request")
    if not request:
        st.info("Pick a session on the Dashboard.")
        st.stop()

    if "engine" not in st.session_state:
        engine = SessionEngine(store)
        try:
            engine.start(request["mode"], request["chapter"])
        except NoQuestionsAvailable:
            st.error("No Questions Found")
            st.caption("Import some data in the Data Vault to get started.")
            if st.button("Go Back"):
                st.session_state.pop("session_request", None)
                go_to("Dashboard")
            st.stop()
        except StoreError as e:
            st.error(f"Could not start the session. {e}")
            st.stop()
        st.session_state["engine"] = engine
    engine: SessionEngine = st.session_state["engine"]

    if engine.state == SessionState.COMPLETE:
        attempt = engine.last_attempt
        pct = analytics.attempt_percentage(attempt)
        st.header(f"{pct}%")
        st.success(f"You scored {attempt['score']} out of {attempt['total']} questions correctly.")
        col1, col2 = st.columns(2)
        with col1:
            st.metric("Mode", attempt["mode"])
        with col2:
            st.metric("Status", "Saved")
        if st.button("Review Session", type="primary", use_container_width=True):
            run_and_rerun(engine.review_again)
        if st.button("Return to Dashboard", use_container_width=True):
            st.session_state.pop("engine", None)
            st.session_state.pop("session_request", None)
            go_to("Dashboard")
        st.stop()

    # Auto-finish when a timed mock runs out
    if engine.is_expired():
        run_and_rerun(engine.finish)

    q = engine.current_question
    n = len(engine.questions)
    st.header(f"{engine.mode} · {engine.chapter or MIXED_CHAPTER}")
    st.progress(engine.progress)
    st.caption(f"Question {engine.current_idx + 1} / {n} · {engine.answered_count} answered")
    remaining = engine.time_remaining()
    if remaining is not None:
        m, s = divmod(int(remaining), 60)
        st.sidebar.metric("Time left", f"{m}:{s:02d}")

    flagged = engine.is_bookmarked()
    if st.button("Unflag question" if flagged else "Flag question"):
        run_and_rerun(engine.toggle_bookmark)

    st.subheader(q.get("text", ""))
    selected = engine.answers[engine.current_idx]
    feedback = engine.feedback()
    for i, option in enumerate(q.get("options") or []):
        label = f"{OPTION_LABELS[i] if i < len(OPTION_LABELS) else i + 1}. {option}"
        if feedback:
            if i == feedback["correct_index"]:
                st.success(f"✓ {label}")
            elif i == selected:
                st.error(f"✗ {label}")
            else:
                st.write(f"○ {label}")
            continue
        marker = "● " if selected == i else ""
        if st.button(f"{marker}{label}", key=f"opt_{engine.current_idx}_{i}", use_container_width=True):
            run_and_rerun(engine.select_answer, i)

    if feedback:
        st.info(f"**Insight:** {feedback['explanation'] or 'No explanation available for this question.'}")

    col1, col2, col3 = st.columns([1, 1, 2])
    with col1:
        if st.button("← Previous", disabled=engine.is_first):
            run_and_rerun(engine.previous)
    with col2:
        if st.button("Next →", disabled=engine.is_last):
            run_and_rerun(engine.next)
    with col3:
        if st.button("Finish", type="primary" if engine.is_last else "secondary"):
            run_and_rerun(engine.finish)

# ----- Search -----
elif page == "Search":
    st.header("Search")
    query = st.text_input("Search by topic, keyword, or chapter...")
    results = db.search_questions(store, query)
    if query.strip():
        st.caption(f"{len(results)} result(s)")
    for q in results:
        with st.expander(f"{q['chapter']} · {q['text']}"):
            options = q.get("options") or []
            for i, option in enumerate(options):
                if i == q.get("correct_index"):
                    st.success(f"✓ {option}")
                else:
                    st.write(f"○ {option}")
            if q.get("explanation"):
                st.info(q["explanation"])

# ----- Analytics -----
elif page == "Analytics":
    st.header("Analytics")
    rows = analytics.chapter_accuracy(db.get_attempts(store))
    summary = analytics.mastery_summary(rows)
    col1, col2 = st.columns(2)
    with col1:
        st.metric("Chapters mastered", f"{summary['mastered']} / {summary['total']}")
    with col2:
        st.metric("Chapters attempted", summary["total"])
    if rows:
        st.bar_chart({r["chapter"]: r["accuracy"] for r in rows})
        for r in rows:
            st.write(f"{r['chapter']}: {r['accuracy']}% ({r['correct']}/{r['total']}) · {analytics.accuracy_band(r['accuracy'])}")
    else:
        st.info("No data available to generate charts.")

# ----- Bookmarks -----
elif page == "Bookmarks":
    st.header("Bookmarks")
    questions = db.get_bookmarked_questions(store)
    st.caption(f"{len(questions)} saved for review")
    if questions:
        if st.button("Practice Flags", key="practice_flags", type="primary"):
            open_session(PRACTICE)
    else:
        st.info("No bookmarked questions. Flag a question during a session to review it here.")
    for q in questions:
        c1, c2 = st.columns([5, 1])
        with c1:
            with st.expander(f"{q['chapter']} · {q['text']}"):
                options = q.get("options") or []
                if 0 <= q.get("correct_index", -1) < len(options):
                    st.success(f"Answer: {options[q['correct_index']]}")
                if q.get("explanation"):
                    st.info(q["explanation"])
        with c2:
            if st.button("Remove", key=f"rm_{q['id']}"):
                db.remove_bookmark(store, q["id"])
                st.rerun()

# ----- Data Vault -----
elif page == "Data Vault":
    st.header("Data Vault")
    st.metric("Total Questions in Bank", db.get_question_count(store))

    uploaded = st.file_uploader("Import Bank", type=["json"])
    if uploaded is not None and st.button("Import", type="primary"):
        try:
            n = import_questions(store, uploaded.getvalue().decode("utf-8"), uploaded.name)
            st.success(f"Import Successful! {n} questions added.")
        except (InvalidImportError, UnicodeDecodeError):
            st.error("Invalid JSON format")

    st.download_button(
        "Export All",
        data=export_questions(store),
        file_name=export_filename(),
        mime="application/json",
    )

    st.subheader("Chapters Found")
    chapters = db.get_chapter_counts(store)
    if not chapters:
        st.caption("No chapters detected. Please import data.")
    for name, count in chapters.items():
        st.write(f"**{name}** · {count} qns")

    st.subheader("Maintenance")
    st.caption(
        "Clearing the database permanently removes all imported questions. "
        "Export a backup before proceeding."
    )
    confirm = st.checkbox("I understand this cannot be undone")
    if st.button("Reset Data Vault", disabled=not confirm):
        db.clear_questions(store)
        st.rerun()
