import asyncio
import pytest

from narrator.core.config import VoiceSettings
from narrator.orchestrator.controller import PlaybackController
from narrator.orchestrator.events import Event
from narrator.orchestrator.state import State
from narrator.text.chunker import Chunker

from conftest import FakeBackend, settle

TEXT = "Hello world. This is a test."
# Five sentences of 12 characters: each one is 20% of the document
EVEN_TEXT = "Read me now. Read me now. Read me now. Read me now. Read me now."


@pytest.fixture
def backend(router):
    return FakeBackend(router)


@pytest.fixture
def controller(router, backend):
    controller = PlaybackController(router, Chunker(200))
    controller.attach(backend)
    return controller


@pytest.mark.asyncio
async def test_controller_initial_state(controller):
    assert controller.state == State.IDLE
    assert controller.progress == 0.0
    assert controller.session is None


@pytest.mark.asyncio
async def test_speak_submits_first_segment(controller, backend):
    await controller.speak(TEXT)

    assert controller.state == State.PLAYING
    assert len(backend.spoken) == 1
    segment, _, generation = backend.spoken[0]
    assert segment.text == "Hello world."
    assert generation == controller.session.generation


@pytest.mark.asyncio
async def test_segments_advance_until_document_finishes(controller, backend):
    await controller.speak(TEXT)
    await backend.finish()

    assert [s.text for s, _, _ in backend.spoken] == ["Hello world.", "This is a test."]
    assert controller.progress == pytest.approx(12 / 27 * 100)
    assert controller.state == State.PLAYING

    await backend.finish()

    assert controller.progress == 100.0
    assert controller.state == State.IDLE
    assert controller.current_segment is None


@pytest.mark.asyncio
async def test_speak_empty_text_enters_error(controller, backend):
    await controller.speak("")

    assert controller.state == State.ERROR
    assert "empty" in controller.error.lower()
    assert backend.spoken == []


@pytest.mark.asyncio
async def test_speak_whitespace_enters_error(controller, backend):
    await controller.speak("   \n\t ")

    assert controller.state == State.ERROR
    assert backend.spoken == []


@pytest.mark.asyncio
@pytest.mark.parametrize("reach", ["playing", "paused", "error", "finished"])
async def test_stop_always_resets(controller, backend, reach):
    await controller.speak(EVEN_TEXT)
    await backend.finish()
    if reach == "paused":
        await controller.pause()
    elif reach == "error":
        await backend.emit(Event.SEGMENT_ERROR, reason="boom")
    elif reach == "finished":
        for _ in range(4):
            await backend.finish()

    await controller.stop()

    assert controller.state == State.IDLE
    assert controller.progress == 0.0
    assert controller.error is None
    assert controller.session is None
    assert backend.calls[-1] == "stop"


@pytest.mark.asyncio
async def test_events_after_stop_are_ignored(controller, backend):
    await controller.speak(TEXT)
    await controller.stop()

    await backend.finish()
    await backend.emit(Event.SEGMENT_ERROR, reason="late")

    assert controller.state == State.IDLE
    assert controller.progress == 0.0
    assert controller.error is None
    assert len(backend.spoken) == 1


@pytest.mark.asyncio
async def test_new_speak_discards_previous_session(controller, backend):
    await controller.speak(TEXT)
    old_generation = backend.spoken[-1][2]

    await controller.speak("Another document.")
    assert "stop" in backend.calls

    # the old first segment finishing must not advance the new session
    await backend.emit(Event.SEGMENT_ENDED, generation=old_generation, index=0)
    assert controller.progress == 0.0
    assert backend.spoken[-1][0].text == "Another document."

    await backend.finish()
    assert controller.progress == 100.0


@pytest.mark.asyncio
async def test_events_from_another_backend_are_ignored(controller, backend, router):
    await controller.speak(TEXT)
    other = FakeBackend(router, name="model")
    other.spoken = list(backend.spoken)

    await other.finish()

    assert controller.progress == 0.0
    assert len(backend.spoken) == 1


@pytest.mark.asyncio
async def test_time_progress_stays_inside_segment_share(controller, backend):
    await controller.speak(TEXT)

    await backend.emit(Event.SEGMENT_PROGRESS, elapsed=0.5, duration=1.0)
    assert controller.progress == pytest.approx(6 / 27 * 100)

    # a smaller sample never moves progress back
    await backend.emit(Event.SEGMENT_PROGRESS, elapsed=0.25, duration=1.0)
    assert controller.progress == pytest.approx(6 / 27 * 100)

    await backend.finish()
    assert controller.progress == pytest.approx(12 / 27 * 100)

    # the last segment fully played is still not the end of the document
    await backend.emit(Event.SEGMENT_PROGRESS, elapsed=2.0, duration=2.0)
    assert controller.progress < 100.0

    await backend.finish()
    assert controller.progress == 100.0


@pytest.mark.asyncio
async def test_progress_is_monotonic_over_a_session(controller, backend):
    seen = []
    controller.on_change(lambda: seen.append(controller.progress))

    await controller.speak(EVEN_TEXT)
    for _ in range(5):
        await backend.emit(Event.SEGMENT_PROGRESS, elapsed=0.3, duration=1.0)
        await backend.emit(Event.SEGMENT_PROGRESS, elapsed=0.9, duration=1.0)
        assert max(seen) < 100.0
        await backend.finish()

    assert seen == sorted(seen)
    assert seen[-1] == 100.0


@pytest.mark.asyncio
async def test_pause_then_resume_keeps_progress(controller, backend):
    await controller.speak(EVEN_TEXT)
    await backend.finish()
    await backend.finish()
    assert controller.progress == pytest.approx(40.0)

    await controller.pause()
    assert controller.state == State.PAUSED
    assert backend.calls[-1] == "pause"

    await controller.resume()
    assert controller.state == State.PLAYING
    assert backend.calls[-1] == "resume"

    await backend.finish()
    assert controller.progress == pytest.approx(60.0)


@pytest.mark.asyncio
async def test_progress_events_ignored_while_paused(controller, backend):
    await controller.speak(EVEN_TEXT)
    await controller.pause()

    await backend.emit(Event.SEGMENT_PROGRESS, elapsed=0.5, duration=1.0)

    assert controller.progress == 0.0


@pytest.mark.asyncio
async def test_segment_ending_while_paused_waits_for_resume(controller, backend):
    await controller.speak(EVEN_TEXT)
    await controller.pause()

    await backend.finish()
    assert controller.state == State.PAUSED
    assert len(backend.spoken) == 1
    assert controller.session.awaiting_submit

    await controller.resume()
    assert controller.state == State.PLAYING
    assert backend.spoken[-1][0].index == 1


@pytest.mark.asyncio
async def test_pause_when_idle_is_noop(controller, backend):
    await controller.pause()

    assert controller.state == State.IDLE
    assert "pause" not in backend.calls


@pytest.mark.asyncio
async def test_error_keeps_progress_and_session(controller, backend):
    await controller.speak(EVEN_TEXT)
    await backend.finish()

    await backend.emit(Event.SEGMENT_ERROR, reason="Error in speech synthesis: boom")

    assert controller.state == State.ERROR
    assert controller.error == "Error in speech synthesis: boom"
    assert controller.progress == pytest.approx(20.0)
    assert controller.session is not None
    assert len(backend.spoken) == 2


@pytest.mark.asyncio
async def test_resume_after_error_retries_failed_segment(controller, backend):
    await controller.speak(EVEN_TEXT)
    await backend.finish()
    await backend.emit(Event.SEGMENT_ERROR, reason="boom")

    await controller.resume()

    assert controller.state == State.PLAYING
    assert controller.error is None
    assert backend.spoken[-1][0].index == 1
    assert controller.progress == pytest.approx(20.0)


@pytest.mark.asyncio
async def test_resume_without_session_speaks_stored_text(controller, backend):
    await controller.speak(TEXT)
    await controller.stop()

    await controller.resume()

    assert controller.state == State.PLAYING
    assert backend.spoken[-1][0].text == "Hello world."
    assert controller.session.current_index == 0


@pytest.mark.asyncio
async def test_resume_with_nothing_spoken_is_noop(controller, backend):
    await controller.resume()

    assert controller.state == State.IDLE
    assert backend.spoken == []


@pytest.mark.asyncio
async def test_speak_loads_backend_first(controller, backend):
    backend._ready = False
    backend.prepare_gate = asyncio.Event()

    await controller.speak(TEXT)
    assert controller.state == State.LOADING
    assert backend.spoken == []

    backend.prepare_gate.set()
    await settle()

    assert controller.state == State.PLAYING
    assert len(backend.spoken) == 1


@pytest.mark.asyncio
async def test_failed_load_enters_error(controller, backend):
    backend._ready = False
    backend.fail_reason = "Error loading speech model x: not found"

    await controller.speak(TEXT)
    await settle()

    assert controller.state == State.ERROR
    assert controller.error == "Error loading speech model x: not found"
    assert backend.spoken == []


@pytest.mark.asyncio
async def test_resume_after_failed_load_prepares_again(controller, backend):
    backend._ready = False
    backend.fail_reason = "Error loading speech model x: timed out"
    await controller.speak(TEXT)
    await settle()
    assert controller.state == State.ERROR

    backend.fail_reason = None
    await controller.resume()
    assert controller.state == State.LOADING
    await settle()

    assert controller.state == State.PLAYING
    assert controller.error is None
    assert backend.calls.count("prepare") == 2
    assert backend.spoken[0][0].index == 0


@pytest.mark.asyncio
async def test_stop_cancels_pending_load(controller, backend):
    backend._ready = False
    backend.prepare_gate = asyncio.Event()

    await controller.speak(TEXT)
    await settle()
    await controller.stop()
    backend.prepare_gate.set()
    await settle()

    assert controller.state == State.IDLE
    assert backend.spoken == []
    assert not backend.is_loading


@pytest.mark.asyncio
async def test_speak_applies_clamped_settings(controller, backend):
    await controller.speak(TEXT, VoiceSettings(speed=9.0, volume=2.0, pitch=-1.0))

    _, settings, _ = backend.spoken[0]
    assert settings == VoiceSettings(speed=2.0, volume=1.0, pitch=0.0)
    assert controller.session.speed == 2.0


@pytest.mark.asyncio
async def test_speak_without_backend_enters_error(router):
    controller = PlaybackController(router)

    await controller.speak(TEXT)

    assert controller.state == State.ERROR
    assert controller.error == "No speech backend selected"
