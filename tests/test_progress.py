"""ProgressSignal — dismiss, settle, show, settle; never two indicators at once."""

import asyncio

import pytest

from core.progress import ProgressSignal
from core.signals import PROGRESS_DISMISS, PROGRESS_SHOW


@pytest.fixture
def timeline(monkeypatch, signals):
    """Ordered record of emitted progress signals and settle sleeps."""
    events = []
    real_sleep = asyncio.sleep

    async def fake_sleep(seconds, *args, **kwargs):
        events.append(("sleep", seconds))
        await real_sleep(0)

    monkeypatch.setattr("core.progress.asyncio.sleep", fake_sleep)
    signals.subscribe(PROGRESS_SHOW, lambda msg: events.append(("show", msg)))
    signals.subscribe(PROGRESS_DISMISS, lambda _: events.append(("dismiss", None)))
    return events


async def test_show_from_hidden_settles_once(signals, timeline):
    progress = ProgressSignal(signals, dismiss_settle_seconds=0.5, show_settle_seconds=0.1)

    await progress.show("Creating invoice...")

    assert timeline == [("show", "Creating invoice..."), ("sleep", 0.1)]
    assert progress.is_shown
    assert progress.message == "Creating invoice..."


async def test_show_while_shown_dismisses_first(signals, timeline):
    progress = ProgressSignal(signals, dismiss_settle_seconds=0.5, show_settle_seconds=0.1)
    await progress.show("first")
    timeline.clear()

    await progress.show("second")

    assert timeline == [
        ("dismiss", None),
        ("sleep", 0.5),
        ("show", "second"),
        ("sleep", 0.1),
    ]


async def test_dismiss_when_hidden_is_silent(signals, timeline):
    progress = ProgressSignal(signals)

    await progress.dismiss()

    assert timeline == []
    assert not progress.is_shown


async def test_concurrent_shows_never_overlap(signals, timeline):
    progress = ProgressSignal(signals, dismiss_settle_seconds=0.5, show_settle_seconds=0.1)

    await asyncio.gather(progress.show("a"), progress.show("b"), progress.show("c"))
    await progress.dismiss()

    visible = 0
    for kind, _ in timeline:
        if kind == "show":
            visible += 1
        elif kind == "dismiss":
            visible -= 1
        assert visible in (0, 1)
    assert visible == 0
    assert [k for k, _ in timeline if k == "show"] == ["show"] * 3
