"""
Streamlit Frontend for Voice Expense

Record a sentence like "I paid 120 for dinner, split with Anna" and get a
proposed expense back.

DESIGN PRINCIPLES:
1. Simple, clear interface
2. The draft is a PROPOSAL; the user reviews it before saving anywhere
3. Clear error messages, with a retry button only when retrying can help
4. The microphone is released whenever the recording ends, however it ends

Streamlit reruns this script on every interaction, so the capture session
lives in st.session_state and does not run its own tick loop. The duration
counter is caught up from the clock on each rerun instead.
"""

import asyncio
from uuid import UUID

import streamlit as st

from voice_expense.capture import AudioCaptureSession, CaptureError, SoundDeviceMicrophone
from voice_expense.client import FlowResult, VoiceExpenseFlow, create_client_flow
from voice_expense.config import get_settings, validate_all_settings
from voice_expense.models.audio import CapturedAudio


# Page configuration
st.set_page_config(
    page_title="Voice Expense",
    page_icon="🎙️",
    layout="centered",
)


def run_async(coro):
    """Helper to run async functions in Streamlit."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def get_flow() -> VoiceExpenseFlow:
    """One client flow per browser session."""
    if "flow" not in st.session_state:
        st.session_state.flow = create_client_flow()
    return st.session_state.flow


def get_capture_session() -> AudioCaptureSession:
    if "capture" not in st.session_state:
        capture_settings = get_settings().capture
        microphone = SoundDeviceMicrophone(
            sample_rate_hz=capture_settings.sample_rate_hz,
            channels=capture_settings.channels,
            device_name=capture_settings.device_name,
        )
        st.session_state.capture = AudioCaptureSession(
            microphone,
            min_duration=capture_settings.min_duration_seconds,
            max_duration=capture_settings.max_duration_seconds,
            tick_interval=capture_settings.tick_interval_seconds,
            auto_tick=False,
        )
    return st.session_state.capture


def catch_up_duration(session: AudioCaptureSession) -> None:
    """Advance the tick counter to the elapsed time; may auto-stop."""
    while session.is_recording and session.duration < int(session.elapsed):
        try:
            audio = session.tick()
        except CaptureError:
            return
        if audio is not None:
            st.session_state.audio = audio


def main():
    """Main application entry point."""
    st.title("🎙️ Voice Expense")
    st.markdown("Describe an expense out loud. We'll turn it into a draft for you to review.")

    if "audio" not in st.session_state:
        st.session_state.audio = None
    if "flow_result" not in st.session_state:
        st.session_state.flow_result = None

    group_id = st.text_input(
        "Group ID",
        value=st.session_state.get("group_id", ""),
        help="The group this expense belongs to",
    )
    st.session_state.group_id = group_id

    render_recorder()

    audio: CapturedAudio = st.session_state.audio
    if audio is not None:
        st.audio(audio.data, format=audio.mime_type)
        st.caption(f"{audio.duration_seconds}s, {audio.size_bytes / 1024:.0f} KB")
        if st.button("📤 Transcribe", type="primary"):
            try:
                group_uuid = UUID(group_id)
            except ValueError:
                st.error("Please enter a valid group ID.")
                st.stop()
            submit(audio, group_uuid)

    result: FlowResult = st.session_state.flow_result
    if result is not None:
        render_result(result)

    with st.sidebar:
        render_settings()


def render_recorder():
    """Start / stop / cancel controls for the local microphone."""
    session = get_capture_session()
    catch_up_duration(session)

    col1, col2, col3 = st.columns(3)

    with col1:
        if st.button("⏺️ Record", disabled=session.is_recording):
            if session.state.value in ("stopped", "error"):
                session.reset()
            st.session_state.audio = None
            st.session_state.flow_result = None
            try:
                run_async(session.start())
            except CaptureError as e:
                st.error(e.error.message)
            st.rerun()

    with col2:
        if st.button("⏹️ Stop", disabled=not session.is_recording):
            try:
                st.session_state.audio = run_async(session.stop())
            except CaptureError as e:
                st.warning(e.error.message)
            st.rerun()

    with col3:
        if st.button("✖️ Cancel", disabled=not session.is_recording):
            session.cancel()
            st.session_state.audio = None
            st.rerun()

    if session.is_recording:
        st.info(f"🔴 Recording... {session.duration}s (press Stop when done)")
    elif session.error is not None:
        st.error(session.error.message)


def submit(audio: CapturedAudio, group_id: UUID):
    """Upload and poll, showing the phase while waiting."""
    flow = get_flow()
    progress_bar = st.progress(0, text="Uploading...")

    def on_progress(state):
        progress_bar.progress(state.progress, text=state.message)

    flow.poller.set_progress_callback(on_progress)
    try:
        st.session_state.flow_result = run_async(flow.submit(audio, group_id))
    finally:
        flow.poller.set_progress_callback(None)
    progress_bar.empty()


def render_result(result: FlowResult):
    """Show the draft, or the error with a retry button when it can help."""
    if result.ok:
        draft = result.result.expense_data
        st.success(f"Done ({result.result.confidence:.0%} confidence)")
        st.markdown(f"> {result.result.transcription}")
        st.markdown("### Proposed expense")
        st.markdown(f"**{draft.description}**: {draft.amount} {draft.currency_code or ''}")
        if draft.expense_date:
            st.markdown(f"Date: {draft.expense_date}")
        if draft.splits:
            st.markdown("Splits:")
            for split in draft.splits:
                st.markdown(f"- `{split.profile_id}`: {split.amount}")
        st.caption("Review this draft in the expense form before saving it.")
        return

    st.error(result.error.message)
    if result.can_retry:
        if result.should_repoll:
            if st.button("🔄 Check again"):
                st.session_state.flow_result = run_async(get_flow().repoll())
                st.rerun()
        elif st.session_state.audio is not None and st.button("🔄 Try again"):
            submit(st.session_state.audio, UUID(st.session_state.group_id))
            st.rerun()


def render_settings():
    """Connection status of the configured services."""
    st.markdown("### Configuration")
    status = validate_all_settings()
    for name, key in [
        ("Transcription API client", "client"),
        ("Microphone", "capture"),
        ("Application", "app"),
    ]:
        if status.get(key, False):
            st.success(f"✅ {name}")
        else:
            st.error(f"❌ {name} - {status.get(f'{key}_error', 'Not configured')}")


if __name__ == "__main__":
    main()
