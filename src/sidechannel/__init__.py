"""sidechannel: typed error detail that travels beside a success/failure flag.

Public API:
    - Outcome: success/failure value returned by fallible functions
    - new_error() / on_error(): attach diagnostic objects to failures
    - try_handle_some() / try_handle_all(): pick a handler for a failure
    - Match / match(): narrow handlers by value
    - propagates / Outcome.bail(): early-return shorthand
"""

from __future__ import annotations

import logging

from sidechannel.capture import (
    Accumulate,
    ErrorCapture,
    SourceLocation,
    accumulate,
    capture_exceptions,
    load,
    new_error,
    on_error,
)
from sidechannel.channel import (
    ErrorChannel,
    SlotHandle,
    channel_scope,
    current_channel,
)
from sidechannel.config import Config, config_scope, current_config
from sidechannel.errors import (
    BadOutcomeAccessError,
    ConfigurationError,
    ContractViolation,
    HandlerSignatureError,
    ScopeNestingError,
    SidechannelError,
    UnhandledFailureError,
)
from sidechannel.handlers import DiagnosticInfo, ErrorInfo, Handler, handler
from sidechannel.outcome import FailureID, Outcome, Propagate, propagates
from sidechannel.predicates import (
    Match,
    Predicate,
    if_not,
    match,
    match_member,
    match_value,
    satisfies,
)
from sidechannel.resolver import HandlerResolver, Resolution
from sidechannel.scope import (
    HandlingScope,
    handled_by,
    try_handle_all,
    try_handle_all_async,
    try_handle_some,
    try_handle_some_async,
)

try:
    from importlib.metadata import PackageNotFoundError, version

    __version__ = version("sidechannel")
except PackageNotFoundError:
    __version__ = "0.0.0+unknown"

# Library-level NullHandler: stay silent unless the consumer configures logging.
logging.getLogger("sidechannel").addHandler(logging.NullHandler())

__all__ = [
    "Accumulate",
    "BadOutcomeAccessError",
    "Config",
    "ConfigurationError",
    "ContractViolation",
    "DiagnosticInfo",
    "ErrorCapture",
    "ErrorChannel",
    "ErrorInfo",
    "FailureID",
    "Handler",
    "HandlerResolver",
    "HandlerSignatureError",
    "HandlingScope",
    "Match",
    "Outcome",
    "Predicate",
    "Propagate",
    "Resolution",
    "ScopeNestingError",
    "SidechannelError",
    "SlotHandle",
    "SourceLocation",
    "UnhandledFailureError",
    "accumulate",
    "capture_exceptions",
    "channel_scope",
    "config_scope",
    "current_channel",
    "current_config",
    "handled_by",
    "handler",
    "if_not",
    "load",
    "match",
    "match_member",
    "match_value",
    "new_error",
    "on_error",
    "propagates",
    "satisfies",
    "try_handle_all",
    "try_handle_all_async",
    "try_handle_some",
    "try_handle_some_async",
]
