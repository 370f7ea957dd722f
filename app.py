"""Exam Portal: multi-page exam and practice app."""
import os
import sys
from pathlib import Path

# Ensure project root is in path
project_root = Path(__file__).resolve().parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

import streamlit as st

from db import (
    checkpoint_session,
    clear_all_data,
    delete_question_bank,
    discard_session,
    export_all_data,
    get_attempt_by_id,
    get_attempts,
    get_best_score,
    get_current_session,
    get_last_attempt_date,
    get_question_bank_by_id,
    get_question_banks,
    get_store,
    get_user_stats,
    import_data,
    merge_question_banks,
    resume_or_start,
    save_question_bank,
    submit_session,
)
from engine import CHECKPOINT_INTERVAL_SECONDS, HISTORY_RECENT, RECENT_ATTEMPTS, format_duration, score_color, score_message
from examportal.banks import OPTION_LABELS, BankFormatError, parse_upload
from examportal.engine import calculate_history_statistics
from examportal.models import EXAM_MODE, MODES, PRACTICE_MODE
from examportal.scoring import correct_answers_display, is_multi_select
from examportal.sources import SOURCE_URL, fetch_question_banks, load_bank_directory

PAGES = ["Dashboard", "Exam", "Results", "History"]
BANK_DIR = Path(os.getenv("EXAM_PORTAL_BANK_DIR", "bank"))

st.set_page_config(page_title="Exam Portal", layout="wide")
st.sidebar.title("Exam Portal")

store = get_store()

# Local bank files are merged in once per browser session
if "banks_loaded" not in st.session_state:
    added = merge_question_banks(store, load_bank_directory(BANK_DIR))
    st.session_state["banks_loaded"] = True
    if added:
        st.toast(f"Loaded {added} question bank(s) from {BANK_DIR}")
if "exam_session" not in st.session_state:
    st.session_state["exam_session"] = None

# Allow URL to open a specific page (e.g. after "Start exam")
default_page = st.query_params.get("page", "Dashboard")
if default_page not in PAGES:
    default_page = "Dashboard"
page = st.sidebar.radio("Navigate", PAGES, index=PAGES.index(default_page), label_visibility="collapsed")
st.query_params["page"] = page


def go(target: str, **params):
    st.query_params.clear()
    st.query_params["page"] = target
    for k, v in params.items():
        st.query_params[k] = v
    st.rerun()


def _checkpoint(session):
    checkpoint_session(store, session)


def _fmt_date(iso):
    return iso[:16].replace("T", " ") if iso else "—"


# ----- Dashboard -----
if page == "Dashboard":
    st.header("Dashboard")

    stats = get_user_stats(store)
    col1, col2, col3, col4 = st.columns(4)
    with col1:
        st.metric("Attempts", stats.total_attempts)
    with col2:
        st.metric("Questions answered", stats.total_questions_answered)
    with col3:
        st.metric("Correct", stats.total_correct)
    with col4:
        st.metric("Average score", f"{stats.average_score}%")

    # Resume banner for an unfinished session
    snapshot = get_current_session(store)
    if snapshot:
        answered = len(snapshot.get("answers") or {})
        st.info(
            f"Unfinished {snapshot.get('mode', EXAM_MODE)} session on "
            f"**{snapshot.get('questionBankName') or snapshot.get('questionBankId')}** "
            f"({answered} answered, started {_fmt_date(snapshot.get('startTime'))})."
        )
        c1, c2 = st.columns([1, 5])
        with c1:
            if st.button("Resume", type="primary"):
                go("Exam", bank=str(snapshot.get("questionBankId")), mode=snapshot.get("mode", EXAM_MODE))
        with c2:
            if st.button("Discard session"):
                discard_session(store)
                st.session_state["exam_session"] = None
                st.rerun()

    st.subheader("Question banks")
    banks = get_question_banks(store)
    if not banks:
        st.warning("No question banks yet. Upload a JSON file or sync from the bank server below.")
    for bank in banks:
        with st.container(border=True):
            info, actions = st.columns([3, 2])
            with info:
                st.markdown(f"**{bank.name}**")
                if bank.description:
                    st.caption(bank.description)
                best = get_best_score(store, bank.id)
                details = [f"{len(bank.questions)} questions"]
                if bank.time_limit:
                    details.append(f"{bank.time_limit} min")
                if bank.passing_score is not None:
                    details.append(f"pass at {bank.passing_score}%")
                if best is not None:
                    details.append(f"best :{score_color(best)}[{best}%]")
                    details.append(f"last {_fmt_date(get_last_attempt_date(store, bank.id))}")
                st.markdown(" · ".join(details))
            with actions:
                a1, a2, a3 = st.columns(3)
                with a1:
                    if st.button("Exam", key=f"exam_{bank.id}", type="primary", use_container_width=True):
                        go("Exam", bank=bank.id, mode=EXAM_MODE)
                with a2:
                    if st.button("Practice", key=f"practice_{bank.id}", use_container_width=True):
                        go("Exam", bank=bank.id, mode=PRACTICE_MODE)
                with a3:
                    if st.button("Delete", key=f"delete_{bank.id}", use_container_width=True):
                        delete_question_bank(store, bank.id)
                        st.rerun()

    recent = get_attempts(store)[:RECENT_ATTEMPTS]
    if recent:
        st.subheader("Recent attempts")
        for a in recent:
            c1, c2 = st.columns([5, 1])
            with c1:
                st.write(f"{_fmt_date(a.end_time)} · {a.question_bank_name} · {a.mode} · :{score_color(a.score)}[{a.score}%]")
            with c2:
                if st.button("View", key=f"recent_{a.id}"):
                    go("Results", attempt=a.id)

    st.divider()
    col1, col2 = st.columns(2)
    with col1:
        st.subheader("Upload banks")
        st.caption("A JSON array of questions, or an object with a 'questions' array.")
        uploads = st.file_uploader("Question bank files", type="json", accept_multiple_files=True, label_visibility="collapsed")
        if uploads and st.button("Add banks"):
            for f in uploads:
                try:
                    bank = parse_upload(f.getvalue().decode("utf-8"), f.name)
                except (BankFormatError, UnicodeDecodeError) as e:
                    st.error(f"{f.name}: {e}")
                    continue
                save_question_bank(store, bank)
                st.success(f"Added '{bank.name}' ({len(bank.questions)} questions)")
    with col2:
        st.subheader("Bank server")
        source_url = st.text_input("Server URL", value=SOURCE_URL)
        if st.button("Sync banks"):
            with st.spinner("Fetching question banks..."):
                fetched = fetch_question_banks(source_url)
            if not fetched:
                st.warning("No banks could be fetched from the server.")
            else:
                added = merge_question_banks(store, fetched)
                st.success(f"Fetched {len(fetched)} bank(s), {added} new.")

    st.subheader("Backup")
    col1, col2, col3 = st.columns(3)
    with col1:
        st.download_button("Export data", export_all_data(store), file_name="exam_portal_export.json", mime="application/json")
    with col2:
        restore = st.file_uploader("Import data", type="json", key="restore_upload")
        if restore and st.button("Replace my data with this file"):
            try:
                n_banks, n_attempts = import_data(store, restore.getvalue().decode("utf-8"))
                st.session_state["exam_session"] = None
                st.success(f"Imported {n_banks} banks and {n_attempts} attempts.")
            except (BankFormatError, UnicodeDecodeError) as e:
                st.error(f"Import failed: {e}")
    with col3:
        confirm = st.checkbox("I understand this deletes everything")
        if st.button("Clear all data", disabled=not confirm):
            clear_all_data(store)
            st.session_state["exam_session"] = None
            st.session_state.pop("banks_loaded", None)
            st.rerun()

# ----- Exam / Practice -----
elif page == "Exam":
    bank_id = st.query_params.get("bank")
    mode = st.query_params.get("mode", EXAM_MODE)
    if not bank_id or mode not in MODES:
        st.info("Pick a question bank on the Dashboard to start.")
        st.stop()
    bank = get_question_bank_by_id(store, bank_id)
    if bank is None:
        st.error("This question bank no longer exists.")
        st.stop()

    session = st.session_state["exam_session"]
    if session is None or not session.matches(bank_id, mode):
        session, replaced = resume_or_start(store, bank, mode)
        st.session_state["exam_session"] = session
        if replaced:
            st.toast(f"Your unfinished session on {replaced.get('questionBankName') or replaced.get('questionBankId')} was replaced.")

    st.header(f"{bank.name} · {'Practice' if session.is_practice else 'Exam'}")

    @st.fragment(run_every=CHECKPOINT_INTERVAL_SECONDS)
    def session_clock():
        _checkpoint(session)
        summary = session.get_session_summary()
        remaining = summary["time_remaining_sec"]
        if remaining is None:
            st.metric("Elapsed", format_duration(summary["time_elapsed_sec"]))
        else:
            st.metric("Time left", format_duration(remaining))
            if remaining == 0:
                st.warning("Time is up. Submit when you are ready.")

    with st.sidebar:
        session_clock()

    n = session.total_questions
    st.sidebar.progress(session.answered_count / n if n else 0)
    st.sidebar.caption(f"{session.answered_count}/{n} answered · {len(session.flagged)} flagged")

    # Question navigator
    nav_cols = st.sidebar.columns(5)
    for pos in range(n):
        mark = "⚑" if session.is_flagged(pos) else ("✓" if session.selected_options(pos) else "")
        with nav_cols[pos % 5]:
            if st.button(f"{pos + 1}{mark}", key=f"nav_{pos}", type="primary" if pos == session.current_index else "secondary"):
                session.go_to(pos)
                _checkpoint(session)
                st.rerun()

    pos = session.current_index
    q = session.current_question()
    options = session.display_options()
    selected = session.selected_options()
    multi = is_multi_select(q)
    locked = session.is_locked()
    idx = session.question_index()

    st.subheader(f"Question {pos + 1} of {n}" + (" ⚑" if session.is_flagged() else ""))
    tags = [t for t in (q.section, q.difficulty, f"{q.points:g} pt" if q.weight is not None else None) if t]
    if tags:
        st.caption(" · ".join(tags))
    st.markdown(q.question)

    def on_single(key):
        session.select_option(st.session_state[key])
        _checkpoint(session)

    def on_multi(option, key):
        session.toggle_option(option, st.session_state[key])
        _checkpoint(session)

    feedback = session.feedback()
    if feedback:
        for i, opt in enumerate(feedback["options"]):
            label = f"{OPTION_LABELS[i]}. {opt['text']}"
            if opt["state"] == "correct":
                st.success(f"✓ {label}" + (" (your answer)" if opt["selected"] else ""))
            elif opt["state"] == "wrong":
                st.error(f"✗ {label} (your answer)")
            else:
                st.write(f"○ {label}")
        if feedback["is_correct"]:
            st.success("✓ Correct! Well done.")
        else:
            st.error(f"✗ Incorrect. Correct answer: {', '.join(feedback['correct_answers'])}")
        if feedback["explanation"]:
            st.info(feedback["explanation"])
    elif multi:
        st.caption("Select all that apply.")
        for i, opt in enumerate(options):
            key = f"q_{session.session_id}_{idx}_{i}"
            st.checkbox(f"{OPTION_LABELS[i]}. {opt}", value=opt in selected, key=key, on_change=on_multi, args=(opt, key))
        if session.is_practice and st.button("Check answer", disabled=not selected):
            session.check_answer()
            _checkpoint(session)
            st.rerun()
    else:
        key = f"q_{session.session_id}_{idx}"
        st.radio(
            "Choose one:",
            options,
            index=options.index(selected[0]) if selected and selected[0] in options else None,
            format_func=lambda o: f"{OPTION_LABELS[options.index(o)]}. {o}",
            key=key,
            on_change=on_single,
            args=(key,),
        )

    if q.hint:
        if session.hint_revealed():
            st.info(f"Hint: {q.hint}")
        elif st.button("Show hint"):
            session.reveal_hint()
            _checkpoint(session)
            st.rerun()

    col1, col2, col3, col4 = st.columns(4)
    with col1:
        if st.button("← Previous", disabled=pos == 0, use_container_width=True):
            session.previous()
            _checkpoint(session)
            st.rerun()
    with col2:
        if st.button("Next →", disabled=pos >= n - 1, use_container_width=True):
            session.next()
            _checkpoint(session)
            st.rerun()
    with col3:
        if st.button("Unflag" if session.is_flagged() else "Flag for review", use_container_width=True):
            session.toggle_flag()
            _checkpoint(session)
            st.rerun()
    with col4:
        if st.button("Submit", type="primary", use_container_width=True):
            st.session_state["confirm_submit"] = True

    if st.session_state.get("confirm_submit"):
        unanswered = n - session.answered_count
        st.warning(
            f"Submit now? {unanswered} unanswered question(s) will count as skipped." if unanswered else "Submit now?"
        )
        c1, c2 = st.columns([1, 5])
        with c1:
            if st.button("Yes, submit"):
                attempt = submit_session(store, session)
                st.session_state["exam_session"] = None
                st.session_state["confirm_submit"] = False
                go("Results", attempt=attempt.id)
        with c2:
            if st.button("Keep going"):
                st.session_state["confirm_submit"] = False
                st.rerun()

    with st.expander("Leave this session"):
        if st.button("Discard without saving"):
            discard_session(store)
            st.session_state["exam_session"] = None
            go("Dashboard")

# ----- Results -----
elif page == "Results":
    attempt_id = st.query_params.get("attempt")
    attempts = get_attempts(store)
    attempt = get_attempt_by_id(store, attempt_id) if attempt_id else (attempts[0] if attempts else None)
    if attempt is None:
        st.info("No results yet. Finish an exam or practice session first.")
        st.stop()

    st.header(f"Results · {attempt.question_bank_name}")
    st.markdown(f"## :{score_color(attempt.score)}[{attempt.score}%]")
    st.write(score_message(attempt.score))
    if attempt.passed is True:
        st.success("Passed")
    elif attempt.passed is False:
        st.error("Not passed")

    col1, col2, col3, col4 = st.columns(4)
    with col1:
        st.metric("Correct", attempt.correct_count)
    with col2:
        st.metric("Wrong", attempt.wrong_count)
    with col3:
        st.metric("Skipped", attempt.skipped_count)
    with col4:
        duration = attempt.duration_seconds
        st.metric("Time", format_duration(duration) if duration is not None else "—")
    st.caption(f"{attempt.mode.title()} · {attempt.earned_points:g}/{attempt.total_points:g} points · {_fmt_date(attempt.end_time)}")

    if attempt.section_scores:
        st.subheader("Sections")
        for s in attempt.section_scores:
            st.write(f"{s.section} ({s.weight}% of exam): :{score_color(s.score)}[{s.score}%]")
            st.progress(s.score / 100)

    bank = get_question_bank_by_id(store, attempt.question_bank_id)
    st.subheader("Review")
    if bank is None:
        st.warning("The question bank for this attempt has been deleted; questions cannot be shown.")
    else:
        review_filter = st.radio("Show", ["All", "Incorrect", "Skipped", "Correct"], horizontal=True)
        for a in attempt.answers:
            if a.question_index >= len(bank.questions):
                continue
            if review_filter == "Incorrect" and (a.is_correct or a.is_skipped):
                continue
            if review_filter == "Skipped" and not a.is_skipped:
                continue
            if review_filter == "Correct" and not a.is_correct:
                continue
            q = bank.questions[a.question_index]
            icon = "✓" if a.is_correct else ("○" if a.is_skipped else "✗")
            with st.expander(f"{icon} Q{a.question_index + 1}. {q.question[:100]}"):
                st.markdown(q.question)
                st.write("Your answer: " + (", ".join(a.selected_options) if a.selected_options else "— skipped —"))
                st.write("Correct answer: " + ", ".join(correct_answers_display(q)))
                if a.used_hint:
                    st.caption("Hint used")
                if q.explanation:
                    st.info(q.explanation)
                for ref in q.references:
                    st.caption(ref)

    col1, col2 = st.columns([1, 5])
    with col1:
        if bank is not None and st.button("Retake", type="primary"):
            go("Exam", bank=bank.id, mode=attempt.mode)
    with col2:
        if st.button("Back to Dashboard"):
            go("Dashboard")

# ----- History -----
elif page == "History":
    st.header("History")
    attempts = get_attempts(store)
    if not attempts:
        st.info("No attempts yet.")
        st.stop()

    bank_names = {}
    for a in attempts:
        bank_names.setdefault(a.question_bank_id, a.question_bank_name)
    col1, col2 = st.columns(2)
    with col1:
        bank_filter = st.selectbox("Bank", [None] + list(bank_names), format_func=lambda b: "All banks" if b is None else bank_names[b])
    with col2:
        mode_filter = st.selectbox("Mode", [None, EXAM_MODE, PRACTICE_MODE], format_func=lambda m: "All modes" if m is None else m.title())

    history = calculate_history_statistics(attempts, bank_id=bank_filter, mode=mode_filter, recent=HISTORY_RECENT)
    col1, col2, col3 = st.columns(3)
    with col1:
        st.metric("Attempts", history["count"])
    with col2:
        st.metric("Average score", f"{history['average_score']}%")
    with col3:
        st.metric("Best score", f"{history['best_score']}%")

    if history["chart"]:
        st.subheader("Recent scores")
        st.line_chart({"Score": [p["score"] for p in history["chart"]]})

    if history["weak_sections"]:
        st.subheader("Weakest sections")
        for name, score in history["weak_sections"]:
            st.write(f"{name}: :{score_color(score)}[{score}%]")

    st.subheader("Recent attempts")
    for a in history["recent"]:
        c1, c2 = st.columns([5, 1])
        with c1:
            st.write(f"{_fmt_date(a.end_time)} · {a.question_bank_name} · {a.mode} · :{score_color(a.score)}[{a.score}%]")
        with c2:
            if st.button("View", key=f"view_{a.id}"):
                go("Results", attempt=a.id)
