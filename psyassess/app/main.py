"""Streamlit entry point for the psychometric assessment."""
from __future__ import annotations

from pathlib import Path
import sys

import streamlit as st

PROJECT_ROOT = Path(__file__).resolve().parents[2]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from psyassess.app.runner import AssessmentContext, build_sequencer, create_context
from psyassess.config.logging_config import setup_logging
from psyassess.config.settings import get_default_company_id, get_default_job_id, get_default_username
from psyassess.models.content import LoaderState
from psyassess.models.errors import ContentUnavailable, EndFailed, StartFailed
from psyassess.models.session import SessionSnapshot, SessionState

st.set_page_config(page_title="Psychometric Assessment", layout="wide")
setup_logging()

CONTEXT_KEY = "assessment_context"


def _query_int(name: str, default: int | None) -> int | None:
    raw = st.query_params.get(name)
    if raw is not None and str(raw).isdigit():
        return int(raw)
    return default


def _get_context() -> AssessmentContext:
    if CONTEXT_KEY not in st.session_state:
        st.session_state[CONTEXT_KEY] = create_context()
    return st.session_state[CONTEXT_KEY]


def _load_content(context: AssessmentContext, job_id: int, company_id: int) -> None:
    if context.loader.state is LoaderState.READY:
        return
    if context.loader.state is LoaderState.FAILED:
        st.error(context.loader.error or "Scenario content unavailable")
        st.stop()
    with st.spinner("Loading..."):
        try:
            context.content = context.runner.run(context.loader.load(job_id, company_id))
        except ContentUnavailable as exc:
            st.error(str(exc))
            st.stop()


def _ensure_sequencer(context: AssessmentContext, username: str, job_id: int, company_id: int) -> None:
    if context.sequencer is not None:
        return
    # Capture backends pull in OpenCV and PyAudio; only import them once a session is needed.
    from psyassess.models.devices import OpenCVMediaDevice, WhisperSpeechRecognizer

    build_sequencer(
        context,
        username=username,
        job_id=job_id,
        company_id=company_id,
        device=OpenCVMediaDevice(),
        recognizer=WhisperSpeechRecognizer(),
    )


def _start(context: AssessmentContext) -> None:
    try:
        context.runner.run(context.sequencer.start())
    except StartFailed as exc:
        st.session_state["assessment_error"] = str(exc)


def _advance(context: AssessmentContext) -> None:
    try:
        context.runner.run(context.sequencer.advance())
    except EndFailed as exc:
        st.session_state["assessment_error"] = str(exc)


def _submit(context: AssessmentContext) -> None:
    try:
        context.runner.run(context.sequencer.submit())
    except EndFailed as exc:
        st.session_state["assessment_error"] = str(exc)


def render_preview(context: AssessmentContext, snapshot: SessionSnapshot, username: str) -> None:
    header_cols = st.columns([1, 1])
    with header_cols[0]:
        if snapshot.recording:
            st.markdown(":red[●] Recording")
    with header_cols[1]:
        st.caption(username)

    stream = context.sequencer.capture.preview
    frame = getattr(stream, "latest_frame", None) if stream is not None else None
    if frame:
        st.image(frame, use_container_width=True)
    else:
        st.container(height=360, border=True)

    if snapshot.state is SessionState.NOT_STARTED:
        st.button(
            "Start Assessment",
            type="primary",
            use_container_width=True,
            on_click=_start,
            args=(context,),
        )


def render_prompt(context: AssessmentContext, snapshot: SessionSnapshot) -> None:
    top = st.columns([1, 1])
    top[0].markdown(f"**Scenario {snapshot.position.scenario_index + 1}/{snapshot.scenario_count}**")
    top[1].caption("Job Assessment")

    st.caption("Scenario")
    st.write(snapshot.scenario.text)
    st.caption(f"Question {snapshot.position.question_index + 1}/{snapshot.question_count}")
    st.write(snapshot.question.text)

    response_cols = st.columns([1, 1])
    response_cols[0].caption("Your Response")
    if snapshot.listening:
        response_cols[1].markdown(":green[🎙 Listening...]")
    st.info(snapshot.transcript or "Start speaking to record your response...")

    footer = st.columns([1, 1])
    footer[0].caption("Press Next Question to move on")
    footer[1].caption(f"Total time: {snapshot.formatted_elapsed}")

    if snapshot.state is SessionState.ACTIVE and not snapshot.is_last_question:
        st.button(
            "Next Question",
            use_container_width=True,
            disabled=not context.sequencer.can_advance_by_key,
            on_click=_advance,
            args=(context,),
        )
    if snapshot.is_last_question and snapshot.state in (SessionState.ACTIVE, SessionState.SUBMITTING):
        submitting = snapshot.state is SessionState.SUBMITTING
        st.button(
            "Submitting..." if submitting else "Submit Assessment",
            type="primary",
            use_container_width=True,
            disabled=submitting,
            on_click=_submit,
            args=(context,),
        )


@st.fragment(run_every=1)
def live_panel(context: AssessmentContext, username: str) -> None:
    snapshot = context.runner.call(context.sequencer.snapshot)
    error = st.session_state.get("assessment_error") or (
        snapshot.error if snapshot.state is SessionState.FAILED else None
    )
    if error:
        st.error(error)
        return
    if snapshot.state is SessionState.COMPLETED:
        st.success("Assessment completed and submitted successfully.")
        st.caption(f"Total time: {snapshot.formatted_elapsed}")
        return

    col_left, col_right = st.columns([3, 2])
    with col_left:
        render_preview(context, snapshot, username)
    with col_right:
        render_prompt(context, snapshot)


def main() -> None:
    job_id = _query_int("job_id", get_default_job_id())
    company_id = _query_int("comp_id", get_default_company_id())
    username = st.query_params.get("username") or get_default_username()
    if job_id is None or company_id is None:
        st.error("A job_id and comp_id are required to load the assessment.")
        st.stop()

    context = _get_context()
    _load_content(context, job_id, company_id)
    if context.content is None or not context.content.scenarios:
        st.info("No scenarios available.")
        st.stop()

    st.title("Psychometric Assessment")
    st.caption(f"Job Assessment for {context.content.department}")

    _ensure_sequencer(context, username, job_id, company_id)
    live_panel(context, username)


main()
