"""Exception hierarchy for sidechannel.

Domain failures never raise: they travel as failed ``Outcome`` values. The
exceptions here signal misuse of the mechanism itself.
"""

from __future__ import annotations


class SidechannelError(Exception):
    """Base exception for all sidechannel errors."""

    def __init__(self, message: str, *, hint: str | None = None) -> None:
        super().__init__(message)
        self.hint = hint


class ConfigurationError(SidechannelError):
    """Configuration validation or resolution failed."""


class ContractViolation(SidechannelError):  # noqa: N818
    """The error-handling mechanism was used in a way it does not allow.

    These are programming errors, not domain failures; they are never
    turned into ``Outcome`` values.
    """


class BadOutcomeAccessError(ContractViolation):
    """Read the value of a failure, or the failure id of a success."""


class ScopeNestingError(ContractViolation):
    """A slot was released out of LIFO order or more than once."""

    def __init__(
        self,
        message: str,
        *,
        slot_type: type | None = None,
        hint: str | None = None,
    ) -> None:
        super().__init__(message, hint=hint)
        self.slot_type = slot_type


class UnhandledFailureError(ContractViolation):
    """``try_handle_all`` reached its end with no satisfiable handler."""

    def __init__(
        self,
        message: str,
        *,
        failure_id: int,
        hint: str | None = None,
    ) -> None:
        super().__init__(message, hint=hint)
        self.failure_id = failure_id


class HandlerSignatureError(ContractViolation, TypeError):
    """A handler declares a parameter the resolver cannot interpret."""

    def __init__(
        self,
        message: str,
        *,
        handler_name: str | None = None,
        parameter: str | None = None,
        hint: str | None = None,
    ) -> None:
        self.handler_name = handler_name
        self.parameter = parameter
        if handler_name is not None:
            message = f"[{handler_name}] {message}"
        super().__init__(message, hint=hint)


HINTS = {
    "bad_value_access": (
        "Check is_success() before value(), or use value_or()/bail() instead."
    ),
    "bad_failure_access": "Only failed outcomes carry a failure id.",
    "scope_nesting": (
        "Slot handles must be released in the reverse order they were "
        "registered; prefer try_handle_some() over manual registration."
    ),
    "inactive_scope": (
        "Enter the scope with a with statement before settling, or use "
        "try_handle_some()."
    ),
    "unhandled": (
        "try_handle_all() needs a handler that always matches; end the list "
        "with a handler that takes no parameters or only ErrorInfo."
    ),
    "annotation": (
        "Annotate each handler parameter with a diagnostic type, "
        "Annotated[T, predicate], Match[T, ...], T | None, ErrorInfo or "
        "DiagnosticInfo."
    ),
}
