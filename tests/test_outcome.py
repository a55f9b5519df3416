"""Outcome boundary tests: discriminant, access contract, propagation."""

from __future__ import annotations

import copy
import pickle
from typing import Any

from hypothesis import given
from hypothesis import strategies as st
import pytest

from sidechannel import (
    BadOutcomeAccessError,
    ErrorChannel,
    Outcome,
    Propagate,
    new_error,
    propagates,
)

pytestmark = pytest.mark.unit

_values = st.one_of(st.integers(), st.text(), st.none(), st.tuples(st.integers()))


@given(value=_values)
def test_success_exposes_its_value(value: Any) -> None:
    outcome = Outcome.success(value)

    assert outcome.is_success() is True
    assert outcome.value() == value
    assert bool(outcome) is True


def test_failure_exposes_its_id() -> None:
    failed = Outcome.failure(7)

    assert failed.is_success() is False
    assert not failed
    assert failed.failure_id() == 7


def test_value_of_failure_is_contract_violation() -> None:
    with pytest.raises(BadOutcomeAccessError) as exc:
        Outcome.failure(3).value()
    assert "failure 3" in str(exc.value)
    assert exc.value.hint is not None


def test_failure_id_of_success_is_contract_violation() -> None:
    with pytest.raises(BadOutcomeAccessError):
        Outcome.success(1).failure_id()


def test_outcome_requires_exactly_one_payload() -> None:
    with pytest.raises(TypeError):
        Outcome()
    with pytest.raises(TypeError):
        Outcome(1, failure_id=2)  # type: ignore[arg-type]


def test_outcome_is_immutable() -> None:
    outcome = Outcome.success("x")
    with pytest.raises(AttributeError):
        outcome._value = "y"  # type: ignore[misc]


def test_value_or_returns_default_only_on_failure() -> None:
    assert Outcome.success(1).value_or(0) == 1
    assert Outcome.failure(1).value_or(0) == 0


def test_equality_compares_discriminant_and_payload() -> None:
    assert Outcome.success(1) == Outcome.success(1)
    assert Outcome.success(1) != Outcome.success(2)
    assert Outcome.failure(5) == Outcome.failure(5)
    assert Outcome.failure(5) != Outcome.failure(6)
    assert Outcome.success(5) != Outcome.failure(5)
    assert hash(Outcome.failure(5)) == hash(Outcome.failure(5))


def test_propagate_keeps_the_failure_id_without_copying() -> None:
    failed = new_error()

    relayed = failed.propagate()

    assert relayed is failed
    assert relayed.failure_id() == failed.failure_id()


def test_propagate_on_success_is_contract_violation() -> None:
    with pytest.raises(BadOutcomeAccessError):
        Outcome.success(1).propagate()


def test_failure_ids_increase_on_one_channel(channel: ErrorChannel) -> None:
    first = new_error()
    second = new_error()
    third = new_error(channel=channel)

    assert first.failure_id() < second.failure_id() < third.failure_id()


@pytest.mark.parametrize(
    "outcome", [Outcome.success([1, 2]), Outcome.success(None), Outcome.failure(12)]
)
def test_outcome_survives_copy_and_pickle(outcome: Outcome[Any]) -> None:
    for clone in (
        copy.copy(outcome),
        copy.deepcopy(outcome),
        pickle.loads(pickle.dumps(outcome)),
    ):
        assert clone == outcome
        assert clone.is_success() is outcome.is_success()


def test_deepcopy_does_not_share_the_value() -> None:
    original = Outcome.success([1, 2])

    clone = copy.deepcopy({"result": original})["result"]

    assert clone.value() == [1, 2]
    assert clone.value() is not original.value()


def test_repr_names_the_variant() -> None:
    assert repr(Outcome.success("a")) == "Outcome.success('a')"
    assert repr(Outcome.failure(9)) == "Outcome.failure(9)"


class TestPropagationShorthand:
    """bail() and @propagates relay failures without naming error types."""

    def test_bail_returns_value_on_success(self) -> None:
        assert Outcome.success(4).bail() == 4

    def test_bail_raises_signal_on_failure(self) -> None:
        failed = Outcome.failure(11)
        with pytest.raises(Propagate) as signal:
            failed.bail()
        assert signal.value.outcome is failed

    def test_propagates_returns_the_inner_failure(self) -> None:
        inner = new_error()

        @propagates
        def outer() -> Outcome[int]:
            value = inner.bail()
            return Outcome.success(value + 1)

        result = outer()

        assert result is inner
        assert result.failure_id() == inner.failure_id()

    def test_propagates_passes_success_through(self) -> None:
        @propagates()
        def outer() -> Outcome[int]:
            return Outcome.success(Outcome.success(2).bail() * 2)

        assert outer() == Outcome.success(4)

    def test_signal_is_not_swallowed_by_except_exception(self) -> None:
        inner = new_error()

        @propagates
        def outer() -> Outcome[int]:
            try:
                inner.bail()
            except Exception:  # pragma: no cover - must not run
                return Outcome.success(-1)
            return Outcome.success(0)

        assert outer() is inner

    @pytest.mark.asyncio
    async def test_propagates_on_coroutines(self) -> None:
        inner = new_error()

        @propagates
        async def outer() -> Outcome[int]:
            return Outcome.success(inner.bail())

        assert await outer() is inner
