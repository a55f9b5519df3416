"""ErrorChannel tests: slot stacks, stale-data protection, LIFO release."""

from __future__ import annotations

import logging

import pytest

from sidechannel import (
    Config,
    ErrorChannel,
    ScopeNestingError,
    channel_scope,
    current_channel,
)
from tests.helpers import Err1, Line

pytestmark = pytest.mark.unit


@pytest.fixture
def ch() -> ErrorChannel:
    return ErrorChannel(config=Config())


def test_next_id_is_strictly_increasing(ch: ErrorChannel) -> None:
    ids = [ch.next_id() for _ in range(50)]
    assert ids == sorted(ids)
    assert len(set(ids)) == len(ids)
    assert ch.last_id == ids[-1]


def test_ids_never_collide_across_channels() -> None:
    a, b = ErrorChannel(config=Config()), ErrorChannel(config=Config())
    assert {a.next_id() for _ in range(5)}.isdisjoint({b.next_id() for _ in range(5)})


def test_last_id_starts_empty(ch: ErrorChannel) -> None:
    assert ch.last_id is None


def test_deposit_without_interest_is_discarded(ch: ErrorChannel) -> None:
    fid = ch.next_id()

    assert ch.deposit(Line, Line(1), fid) is False
    assert ch.fetch(Line, fid) is None


def test_deposit_then_fetch_same_id(ch: ErrorChannel) -> None:
    handle = ch.register_interest(Line)
    fid = ch.next_id()

    assert ch.deposit(Line, Line(4), fid) is True
    assert ch.fetch(Line, fid) == Line(4)
    # Non-destructive read.
    assert ch.fetch(Line, fid) == Line(4)
    ch.release(handle)


def test_stale_content_is_treated_as_absent(ch: ErrorChannel) -> None:
    handle = ch.register_interest(Line)
    old = ch.next_id()
    ch.deposit(Line, Line(1), old)
    new = ch.next_id()

    assert ch.fetch(Line, new) is None
    ch.release(handle)


def test_writes_target_the_innermost_slot(ch: ErrorChannel) -> None:
    outer = ch.register_interest(Line)
    inner = ch.register_interest(Line)
    fid = ch.next_id()

    ch.deposit(Line, Line(9), fid)
    ch.release(inner)

    assert ch.fetch(Line, fid) is None
    ch.release(outer)


def test_release_out_of_order_is_contract_violation(ch: ErrorChannel) -> None:
    first = ch.register_interest(Line)
    second = ch.register_interest(Err1)

    with pytest.raises(ScopeNestingError) as exc:
        ch.release(first)
    assert exc.value.slot_type is Line

    ch.release(second)
    ch.release(first)
    assert ch.open_handles == 0


def test_double_release_is_contract_violation(ch: ErrorChannel) -> None:
    handle = ch.register_interest(Line)
    ch.release(handle)

    with pytest.raises(ScopeNestingError, match="twice"):
        ch.release(handle)


def test_register_interest_rejects_non_types(ch: ErrorChannel) -> None:
    with pytest.raises(TypeError):
        ch.register_interest("Line")  # type: ignore[arg-type]


def test_is_interested_tracks_registration(ch: ErrorChannel) -> None:
    assert not ch.is_interested(Line)
    handle = ch.register_interest(Line)
    assert ch.is_interested(Line)
    ch.release(handle)
    assert not ch.is_interested(Line)


class TestReoffer:
    """Propagating release hands slot content to the enclosing slot."""

    def test_propagating_release_reoffers_to_outer_slot(self, ch: ErrorChannel) -> None:
        outer = ch.register_interest(Line)
        inner = ch.register_interest(Line)
        fid = ch.next_id()
        ch.deposit(Line, Line(2), fid)

        ch.release(inner, propagating=fid)

        assert ch.fetch(Line, fid) == Line(2)
        ch.release(outer)

    def test_release_for_other_failure_does_not_reoffer(self, ch: ErrorChannel) -> None:
        outer = ch.register_interest(Line)
        inner = ch.register_interest(Line)
        stale = ch.next_id()
        ch.deposit(Line, Line(2), stale)
        current = ch.next_id()

        ch.release(inner, propagating=current)

        assert ch.fetch(Line, stale) is None
        assert ch.fetch(Line, current) is None
        ch.release(outer)


class TestUnclaimed:
    def test_unclaimed_deposits_recorded_only_while_tracking(
        self, ch: ErrorChannel
    ) -> None:
        fid = ch.next_id()
        ch.deposit(Line, Line(1), fid)
        assert ch.unclaimed(fid) == ()

        with ch.track_unclaimed():
            ch.deposit(Line, Line(2), fid)
            assert ch.unclaimed(fid) == (Line(2),)

        assert ch.unclaimed(fid) == ()

    def test_unclaimed_tracking_respects_limit(self) -> None:
        ch = ErrorChannel(config=Config(diagnostic_limit=2))
        fid = ch.next_id()
        with ch.track_unclaimed():
            for n in range(5):
                ch.deposit(Line, Line(n), fid)
            assert ch.unclaimed(fid) == (Line(3), Line(4))

    def test_zero_limit_disables_tracking(self) -> None:
        ch = ErrorChannel(config=Config(diagnostic_limit=0))
        fid = ch.next_id()
        with ch.track_unclaimed():
            ch.deposit(Line, Line(1), fid)
            assert ch.unclaimed(fid) == ()


def test_discarded_deposit_is_logged(
    ch: ErrorChannel, caplog: pytest.LogCaptureFixture
) -> None:
    with caplog.at_level(logging.DEBUG, logger="sidechannel"):
        ch.deposit(Line, Line(1), ch.next_id())
    assert any("no interested scope" in r.getMessage() for r in caplog.records)


class TestContextLookup:
    def test_current_channel_is_stable_within_a_context(self) -> None:
        assert current_channel() is current_channel()

    def test_channel_scope_binds_and_restores(self, channel: ErrorChannel) -> None:
        explicit = ErrorChannel(config=Config())
        with channel_scope(explicit) as bound:
            assert bound is explicit
            assert current_channel() is explicit
        assert current_channel() is channel

    def test_channel_scope_creates_fresh_channel(self, channel: ErrorChannel) -> None:
        with channel_scope() as bound:
            assert bound is not channel
            assert current_channel() is bound
