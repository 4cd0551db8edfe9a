"""Tests for the playback controller state machine."""

import asyncio

import pytest

from slughouse.core.errors import NotFoundError, PlaybackError
from slughouse.domain.playback import (
    MemorySettingsStore,
    PlaybackController,
    PlaybackSettings,
    PlayerStatus,
    RepeatMode,
)


class FakeEngine:
    """Records engine calls; load/play can be told to fail."""

    def __init__(self):
        self.calls = []
        self.listener = None
        self.fail_load = False
        self.fail_play = False

    def set_listener(self, listener):
        self.listener = listener

    async def load(self, src):
        self.calls.append(("load", src))
        if self.fail_load:
            raise PlaybackError("cannot load")

    async def play(self):
        self.calls.append(("play",))
        if self.fail_play:
            raise PlaybackError("autoplay blocked")

    def pause(self):
        self.calls.append(("pause",))

    def seek(self, seconds):
        self.calls.append(("seek", seconds))

    def set_volume(self, volume):
        self.calls.append(("volume", volume))

    async def stop(self):
        self.calls.append(("stop",))

    async def close(self):
        self.calls.append(("close",))

    def loads(self):
        return [call[1] for call in self.calls if call[0] == "load"]


class LastChoice:
    """Deterministic stand-in for random.Random."""

    def choice(self, options):
        return options[-1]


@pytest.fixture
def tracks(make_track):
    return [make_track("a", 0), make_track("b", 1), make_track("c", 2)]


@pytest.fixture
def engine():
    return FakeEngine()


@pytest.fixture
def settings_store():
    return MemorySettingsStore()


@pytest.fixture
def controller(engine, settings_store, tracks):
    return PlaybackController(engine, settings_store, tracks, rng=LastChoice())


def run(coro):
    return asyncio.run(coro)


class TestLoadAndPlay:
    """Test load/play/pause transitions."""

    def test_starts_idle_and_registers_listener(self, controller, engine):
        assert controller.status == PlayerStatus.IDLE
        assert engine.listener is controller

    def test_load_pauses_at_zero_with_unknown_duration(self, controller, tracks):
        run(controller.load(tracks[1]))

        snapshot = controller.snapshot()
        assert snapshot.status == PlayerStatus.PAUSED
        assert snapshot.track.id == "b"
        assert snapshot.index == 1
        assert snapshot.position == 0.0
        assert snapshot.duration == 0.0

    def test_metadata_sets_duration(self, controller, tracks):
        run(controller.load(tracks[0]))
        controller.on_metadata(215.5)
        assert controller.snapshot().duration == 215.5

    def test_load_stops_previous_source(self, controller, engine, tracks):
        async def scenario():
            await controller.load(tracks[0])
            await controller.load(tracks[1])

        run(scenario())
        assert engine.calls.count(("stop",)) == 1
        assert engine.calls.index(("stop",)) < len(engine.calls) - 1
        assert engine.loads() == [tracks[0].src, tracks[1].src]

    def test_load_failure_goes_idle(self, controller, engine, tracks):
        engine.fail_load = True
        run(controller.load(tracks[0]))
        assert controller.status == PlayerStatus.IDLE

    def test_play_only_from_paused(self, controller, engine):
        run(controller.play())
        assert controller.status == PlayerStatus.IDLE
        assert ("play",) not in engine.calls

    def test_play_and_pause(self, controller, engine, tracks):
        async def scenario():
            await controller.load(tracks[0])
            await controller.play()

        run(scenario())
        assert controller.status == PlayerStatus.PLAYING

        controller.pause()
        assert controller.status == PlayerStatus.PAUSED
        assert ("pause",) in engine.calls

    def test_pause_ignored_when_not_playing(self, controller, engine, tracks):
        run(controller.load(tracks[0]))
        controller.pause()
        assert ("pause",) not in engine.calls
        assert controller.status == PlayerStatus.PAUSED

    def test_play_failure_stays_paused(self, controller, engine, tracks):
        engine.fail_play = True

        async def scenario():
            await controller.load(tracks[0])
            await controller.play()

        run(scenario())
        assert controller.status == PlayerStatus.PAUSED

    def test_toggle(self, controller, tracks):
        async def scenario():
            await controller.load(tracks[0])
            await controller.toggle()
            assert controller.status == PlayerStatus.PLAYING
            await controller.toggle()
            assert controller.status == PlayerStatus.PAUSED

        run(scenario())

    def test_toggle_from_idle_starts_queue(self, controller):
        run(controller.toggle())
        assert controller.status == PlayerStatus.PLAYING
        assert controller.current_track.id == "a"


class TestSeek:
    """Test seeking within the loaded track."""

    def test_clamps_into_duration(self, controller, engine, tracks):
        run(controller.load(tracks[0]))
        controller.on_metadata(200.0)

        controller.seek(500)
        assert controller.snapshot().position == 200.0

        controller.seek(-5)
        assert controller.snapshot().position == 0.0

        controller.seek(42.5)
        assert controller.snapshot().position == 42.5
        assert engine.calls[-1] == ("seek", 42.5)
        assert controller.status == PlayerStatus.PAUSED

    def test_ignored_when_idle(self, controller, engine):
        controller.seek(10)
        assert not [call for call in engine.calls if call[0] == "seek"]

    def test_time_updates_track_position(self, controller, tracks):
        run(controller.load(tracks[0]))
        controller.on_time_update(12.25)
        assert controller.snapshot().position == 12.25


class TestAutoAdvance:
    """Test what happens on natural end of a track."""

    def play_and_end(self, controller, track_id):
        async def scenario():
            await controller.select(track_id)
            await controller.on_ended()

        run(scenario())

    def test_advances_to_next_track(self, controller, engine):
        self.play_and_end(controller, "a")
        assert controller.current_track.id == "b"
        assert controller.status == PlayerStatus.PLAYING

    def test_last_track_with_repeat_off_stays_ended(self, controller, engine):
        self.play_and_end(controller, "c")

        assert controller.status == PlayerStatus.ENDED
        assert controller.current_track.id == "c"
        assert engine.loads() == [controller.current_track.src]

    def test_repeat_all_wraps_to_first(self, engine, tracks):
        controller = PlaybackController(
            engine, MemorySettingsStore(PlaybackSettings(repeat=RepeatMode.ALL)), tracks
        )
        self.play_and_end(controller, "c")

        assert controller.current_track.id == "a"
        assert controller.status == PlayerStatus.PLAYING

    def test_repeat_one_replays_same_track(self, engine, tracks):
        controller = PlaybackController(
            engine, MemorySettingsStore(PlaybackSettings(repeat=RepeatMode.ONE)), tracks
        )
        self.play_and_end(controller, "b")

        assert controller.current_track.id == "b"
        assert controller.status == PlayerStatus.PLAYING
        assert controller.snapshot().position == 0.0
        assert engine.loads() == [tracks[1].src, tracks[1].src]

    def test_repeat_one_wins_over_shuffle(self, engine, tracks):
        settings = PlaybackSettings(shuffle=True, repeat=RepeatMode.ONE)
        controller = PlaybackController(
            engine, MemorySettingsStore(settings), tracks, rng=LastChoice()
        )
        self.play_and_end(controller, "a")
        assert controller.current_track.id == "a"

    def test_shuffle_picks_another_track(self, engine, tracks):
        controller = PlaybackController(
            engine, MemorySettingsStore(PlaybackSettings(shuffle=True)), tracks, rng=LastChoice()
        )
        self.play_and_end(controller, "c")

        # LastChoice picks the last of the other indices [0, 1]
        assert controller.current_track.id == "b"
        assert controller.status == PlayerStatus.PLAYING

    def test_shuffle_never_repeats_current(self, engine, tracks):
        import random

        controller = PlaybackController(
            engine,
            MemorySettingsStore(PlaybackSettings(shuffle=True, repeat=RepeatMode.ALL)),
            tracks,
            rng=random.Random(7),
        )

        async def scenario():
            await controller.select("a")
            for _ in range(20):
                previous = controller.current_track.id
                await controller.on_ended()
                assert controller.current_track.id != previous

        run(scenario())

    def test_shuffle_with_single_track_falls_back_to_sequence(self, engine, make_track):
        controller = PlaybackController(
            engine,
            MemorySettingsStore(PlaybackSettings(shuffle=True)),
            [make_track("solo")],
            rng=LastChoice(),
        )
        self.play_and_end(controller, "solo")
        assert controller.status == PlayerStatus.ENDED

    def test_ended_event_sets_ended_before_advancing(self, controller):
        seen = []
        controller.subscribe(lambda snapshot: seen.append(snapshot.status))
        self.play_and_end(controller, "a")
        assert PlayerStatus.ENDED in seen
        assert seen[-1] == PlayerStatus.PLAYING

    def test_toggle_after_end_restarts_track(self, controller, engine):
        self.play_and_end(controller, "c")
        run(controller.toggle())

        assert controller.status == PlayerStatus.PLAYING
        assert controller.current_track.id == "c"
        assert engine.loads()[-1] == controller.current_track.src


class TestManualNavigation:
    """Test next/previous/select."""

    def test_next_wraps_and_ignores_repeat(self, controller):
        async def scenario():
            await controller.select("c")
            await controller.next()

        run(scenario())
        assert controller.current_track.id == "a"
        assert controller.status == PlayerStatus.PLAYING

    def test_previous_from_first_wraps_to_last(self, controller):
        async def scenario():
            await controller.select("a")
            await controller.previous()

        run(scenario())
        assert controller.current_track.id == "c"

    def test_previous_steps_back(self, controller):
        async def scenario():
            await controller.select("c")
            await controller.previous()

        run(scenario())
        assert controller.current_track.id == "b"

    def test_previous_ignores_shuffle(self, engine, tracks):
        controller = PlaybackController(
            engine, MemorySettingsStore(PlaybackSettings(shuffle=True)), tracks, rng=LastChoice()
        )

        async def scenario():
            await controller.select("b")
            await controller.previous()

        run(scenario())
        assert controller.current_track.id == "a"

    def test_next_with_shuffle_uses_rng(self, engine, tracks):
        controller = PlaybackController(
            engine, MemorySettingsStore(PlaybackSettings(shuffle=True)), tracks, rng=LastChoice()
        )

        async def scenario():
            await controller.select("c")
            await controller.next()

        run(scenario())
        assert controller.current_track.id == "b"

    def test_next_on_empty_queue_does_nothing(self, engine):
        controller = PlaybackController(engine, MemorySettingsStore())
        run(controller.next())
        assert controller.status == PlayerStatus.IDLE
        assert engine.calls == []

    def test_select_unknown_track(self, controller):
        with pytest.raises(NotFoundError):
            run(controller.select("zzz"))


class TestTrackStartedHook:
    """Test play reporting."""

    def test_called_when_track_starts(self, engine, tracks):
        started = []
        controller = PlaybackController(
            engine, MemorySettingsStore(), tracks, on_track_started=started.append
        )
        run(controller.select("b"))
        assert [track.id for track in started] == ["b"]

    def test_not_called_when_play_fails(self, engine, tracks):
        started = []
        engine.fail_play = True
        controller = PlaybackController(
            engine, MemorySettingsStore(), tracks, on_track_started=started.append
        )
        run(controller.select("b"))
        assert started == []

    def test_hook_failure_does_not_stop_playback(self, engine, tracks):
        def broken(track):
            raise RuntimeError("api down")

        controller = PlaybackController(
            engine, MemorySettingsStore(), tracks, on_track_started=broken
        )
        run(controller.select("a"))
        assert controller.status == PlayerStatus.PLAYING


class TestSettings:
    """Test volume/shuffle/repeat changes and persistence."""

    def test_volume_clamped_and_saved(self, controller, engine, settings_store):
        controller.set_volume(1.7)
        assert controller.settings.volume == 1.0
        controller.set_volume(-1)
        assert controller.settings.volume == 0.0
        controller.set_volume(0.25)

        assert settings_store.settings.volume == 0.25
        assert settings_store.save_count == 3
        assert engine.calls[-1] == ("volume", 0.25)

    def test_volume_applied_on_load(self, engine, tracks):
        controller = PlaybackController(
            engine, MemorySettingsStore(PlaybackSettings(volume=0.4)), tracks
        )
        run(controller.load(tracks[0]))
        assert ("volume", 0.4) in engine.calls

    def test_toggle_shuffle_persists(self, controller, settings_store):
        assert controller.toggle_shuffle() is True
        assert settings_store.settings.shuffle is True
        assert controller.toggle_shuffle() is False

    def test_cycle_repeat_persists(self, controller, settings_store):
        assert controller.cycle_repeat() == RepeatMode.ALL
        assert controller.cycle_repeat() == RepeatMode.ONE
        assert controller.cycle_repeat() == RepeatMode.OFF
        assert settings_store.save_count == 3

    def test_settings_loaded_at_start(self, engine):
        store = MemorySettingsStore(PlaybackSettings(volume=0.3, shuffle=True))
        controller = PlaybackController(engine, store)
        assert controller.settings.volume == 0.3
        assert controller.settings.shuffle is True


class TestMute:
    """Mute silences the engine but never rewrites the stored volume."""

    def test_mute_keeps_stored_volume(self, controller, engine, settings_store):
        controller.set_volume(0.6)
        saves = settings_store.save_count

        assert controller.toggle_mute() is True
        assert engine.calls[-1] == ("volume", 0.0)
        assert controller.settings.volume == 0.6
        assert controller.snapshot().muted is True
        assert settings_store.save_count == saves

        assert controller.toggle_mute() is False
        assert engine.calls[-1] == ("volume", 0.6)

    def test_load_while_muted_stays_silent(self, controller, engine, tracks):
        controller.toggle_mute()
        run(controller.load(tracks[1]))
        assert engine.calls[-1] == ("volume", 0.0)

    def test_set_volume_unmutes(self, controller, engine):
        controller.toggle_mute()
        controller.set_volume(0.3)

        assert controller.muted is False
        assert engine.calls[-1] == ("volume", 0.3)


class TestQueueAndListeners:
    """Test queue replacement and snapshot listeners."""

    def test_set_queue_keeps_current_track(self, controller, tracks, make_track):
        run(controller.select("b"))
        controller.set_queue([make_track("z"), tracks[1]])

        assert controller.current_track.id == "b"
        assert controller.current_index == 1

    def test_removed_current_track_keeps_playing(self, controller, make_track):
        run(controller.select("b"))
        controller.set_queue([make_track("x"), make_track("y")])

        assert controller.current_track.id == "b"
        assert controller.current_index == -1
        run(controller.next())
        assert controller.current_track.id == "x"

    def test_unsubscribe(self, controller, tracks):
        seen = []
        unsubscribe = controller.subscribe(seen.append)
        run(controller.load(tracks[0]))
        count = len(seen)
        unsubscribe()
        controller.on_time_update(3.0)

        assert count > 0
        assert len(seen) == count

    def test_listener_errors_are_contained(self, controller, tracks):
        def broken(snapshot):
            raise ValueError("ui crashed")

        controller.subscribe(broken)
        run(controller.load(tracks[0]))
        assert controller.status == PlayerStatus.PAUSED

    def test_close_releases_engine(self, controller, engine):
        run(controller.close())
        assert ("close",) in engine.calls
        assert controller.status == PlayerStatus.IDLE
