import logging

from playkit_core.domain.events import Signal


def test_failing_observer_is_logged_and_others_still_run(caplog):
    signal = Signal("history_changed")
    seen = []

    def broken(value):
        raise ValueError("observer bug")

    signal.connect(broken)
    signal.connect(seen.append)
    with caplog.at_level(logging.ERROR, logger="playkit_core.events"):
        signal.emit(42)
    assert seen == [42]
    assert "Observer for history_changed failed" in caplog.text
    assert caplog.records[0].name == "playkit_core.events"


def test_unsubscribe_stops_delivery():
    signal = Signal("talk_finished")
    seen = []
    unsubscribe = signal.connect(seen.append)
    signal.emit("a")
    unsubscribe()
    signal.emit("b")
    assert seen == ["a"]
    assert len(signal) == 0
