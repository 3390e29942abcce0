"""Unit tests for playback sessions, failures and notices."""

import pytest

from koe.errors import (
    CapabilityError,
    LocalSpeechError,
    PayloadError,
    RecognizerError,
    RecognizerErrorKind,
    TransportError,
)
from koe.playback.notifier import (
    Notice,
    NoticeLevel,
    PlaybackStateNotifier,
    StateChange,
)
from koe.playback.session import (
    FailureKind,
    InvalidTransitionError,
    PlaybackFailure,
    PlaybackOutcome,
    PlaybackSession,
    PlaybackState,
    SourceKind,
    clamp_rate,
    clamp_volume,
)


class TestPlaybackSession:
    """Tests for the session state machine."""

    def test_happy_path(self) -> None:
        """Test the streamed lifecycle."""
        session = PlaybackSession(SourceKind.STREAMED)

        assert session.transition(PlaybackState.LOADING) == PlaybackState.IDLE
        assert session.transition(PlaybackState.PLAYING) == PlaybackState.LOADING
        session.transition(PlaybackState.ENDED)

        assert session.ended_at is not None
        assert session.transition(PlaybackState.IDLE) == PlaybackState.ENDED

    def test_buffered_path(self) -> None:
        """Test the downgrade to buffered loading."""
        session = PlaybackSession(SourceKind.STREAMED)
        session.transition(PlaybackState.LOADING)
        session.transition(PlaybackState.BUFFERED_LOADING)
        session.transition(PlaybackState.PLAYING)

        assert session.state == PlaybackState.PLAYING

    @pytest.mark.parametrize(
        "path",
        [
            [PlaybackState.PLAYING],
            [PlaybackState.ENDED],
            [PlaybackState.LOADING, PlaybackState.ENDED],
            [PlaybackState.LOADING, PlaybackState.FAILED, PlaybackState.PLAYING],
        ],
    )
    def test_illegal_transitions(self, path: list[PlaybackState]) -> None:
        """Test edges outside the table are refused."""
        session = PlaybackSession(SourceKind.STREAMED)
        *allowed, illegal = path
        for state in allowed:
            session.transition(state)

        with pytest.raises(InvalidTransitionError):
            session.transition(illegal)

    @pytest.mark.parametrize(
        "state", [PlaybackState.LOADING, PlaybackState.BUFFERED_LOADING, PlaybackState.PLAYING]
    )
    def test_stop_from_active_states(self, state: PlaybackState) -> None:
        """Test IDLE is reachable from every active state."""
        session = PlaybackSession(SourceKind.STREAMED)
        session.transition(PlaybackState.LOADING)
        if state != PlaybackState.LOADING:
            session.transition(state)

        assert state.is_active
        session.transition(PlaybackState.IDLE)

    def test_clamped_on_creation(self) -> None:
        """Test volume and rate are clamped."""
        session = PlaybackSession(SourceKind.LOCAL, volume=3.0, rate=0.1)

        assert session.volume == 1.0
        assert session.rate == 0.5

    def test_unique_ids(self) -> None:
        """Test each session gets a new id."""
        first = PlaybackSession(SourceKind.STREAMED)
        second = PlaybackSession(SourceKind.STREAMED)
        assert second.id > first.id


class TestClamping:
    """Tests for volume and rate clamping."""

    @pytest.mark.parametrize("value,expected", [(-1.0, 0.0), (0.4, 0.4), (1.5, 1.0)])
    def test_volume(self, value: float, expected: float) -> None:
        """Test volume is kept within 0-1."""
        assert clamp_volume(value) == expected

    @pytest.mark.parametrize("value,expected", [(0.1, 0.5), (1.25, 1.25), (4.0, 2.0)])
    def test_rate(self, value: float, expected: float) -> None:
        """Test rate is kept within 0.5-2."""
        assert clamp_rate(value) == expected


class TestPlaybackFailure:
    """Tests for failure classification."""

    def test_transport(self) -> None:
        """Test transport errors keep their status."""
        failure = PlaybackFailure.from_error(TransportError("busy", status=503))

        assert failure.kind == FailureKind.TRANSPORT
        assert failure.status == 503
        assert failure.message == "busy"

    def test_payload(self) -> None:
        """Test payload errors."""
        assert PlaybackFailure.from_error(PayloadError("short")).kind == FailureKind.PAYLOAD

    @pytest.mark.parametrize(
        "error", [LocalSpeechError("say failed"), CapabilityError("no mpv"), OSError("io")]
    )
    def test_local(self, error: Exception) -> None:
        """Test everything else is a local failure."""
        assert PlaybackFailure.from_error(error).kind == FailureKind.LOCAL

    def test_outcome_failed(self) -> None:
        """Test the failed property."""
        failure = PlaybackFailure(FailureKind.PAYLOAD, "short")

        assert PlaybackOutcome(1, SourceKind.STREAMED, failure=failure).failed
        assert not PlaybackOutcome(1, SourceKind.STREAMED, completed=True).failed


class TestRecognizerError:
    """Tests for recognizer error kinds."""

    def test_only_no_speech_is_transient(self) -> None:
        """Test which kinds allow a plain restart."""
        transient = [kind for kind in RecognizerErrorKind if RecognizerError("x", kind).is_transient]
        assert transient == [RecognizerErrorKind.NO_SPEECH]


class TestNotifier:
    """Tests for the state and notice fan-out."""

    def change(self, current: PlaybackState) -> StateChange:
        return StateChange(1, PlaybackState.IDLE, current, SourceKind.STREAMED)

    def test_state_listeners(self) -> None:
        """Test every listener receives changes until unsubscribed."""
        notifier = PlaybackStateNotifier()
        first: list[StateChange] = []
        second: list[StateChange] = []
        notifier.subscribe_state(first.append)
        notifier.subscribe_state(second.append)

        notifier.publish_state(self.change(PlaybackState.LOADING))
        notifier.unsubscribe_state(second.append)
        notifier.publish_state(self.change(PlaybackState.IDLE))

        assert len(first) == 2
        assert len(second) == 1

    def test_unsubscribe_unknown(self) -> None:
        """Test removing a listener that was never added."""
        PlaybackStateNotifier().unsubscribe_state(print)

    def test_source_switched(self) -> None:
        """Test the transient downgrade notice."""
        notifier = PlaybackStateNotifier()
        notices: list[Notice] = []
        notifier.subscribe_notices(notices.append)

        notice = notifier.source_switched(SourceKind.STREAMED, SourceKind.LOCAL)

        assert notices == [notice]
        assert notice.message == "Switched from streaming audio to local voice"
        assert notice.level == NoticeLevel.INFO
        assert not notice.is_persistent
        assert notifier.current_error is None

    def test_error_persists(self) -> None:
        """Test errors stay until dismissed."""
        notifier = PlaybackStateNotifier()

        notice = notifier.error("Speech playback failed")

        assert notice.is_persistent
        assert notifier.current_error == notice
        notifier.dismiss()
        assert notifier.current_error is None

    def test_new_session_supersedes_error(self) -> None:
        """Test a session starting clears the persistent error."""
        notifier = PlaybackStateNotifier()
        notifier.error("Speech playback failed")

        notifier.publish_state(self.change(PlaybackState.PLAYING))
        assert notifier.current_error is not None

        notifier.publish_state(self.change(PlaybackState.LOADING))
        assert notifier.current_error is None
