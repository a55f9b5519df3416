"""Configuration: frozen Config with environment resolution and ambient scope."""

from __future__ import annotations

from contextlib import contextmanager
import contextvars
from dataclasses import dataclass, replace
from functools import cache
import os
from typing import TYPE_CHECKING, Any, Literal

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError

from sidechannel.errors import ConfigurationError

if TYPE_CHECKING:
    from collections.abc import Generator, Mapping
    from types import TracebackType

ENV_PREFIX = "SIDECHANNEL_"


@dataclass(frozen=True)
class Config:
    """Immutable configuration for error channels.

    A channel snapshots the ambient config when it is created, so changing
    the config mid-flight never alters a live channel's behavior.

    Example:
        with config_scope(capture_location=True):
            outcome = new_error(ParseError.BAD_SYNTAX)
    """

    #: Deposit a ``SourceLocation`` alongside every ``new_error`` call.
    capture_location: bool = False
    #: Log, at DEBUG level, why each rejected handler did not match.
    trace_resolution: bool = False
    #: Unclaimed deposits remembered per channel for ``DiagnosticInfo``.
    diagnostic_limit: int = 32

    def __post_init__(self) -> None:
        """Validate field types and ranges."""
        for name in ("capture_location", "trace_resolution"):
            value = getattr(self, name)
            if not isinstance(value, bool):
                raise ConfigurationError(
                    f"{name} must be a bool, got {value!r}",
                    hint="Pass True or False.",
                )
        limit = self.diagnostic_limit
        if isinstance(limit, bool) or not isinstance(limit, int) or limit < 0:
            raise ConfigurationError(
                f"diagnostic_limit must be an integer >= 0, got {limit!r}",
                hint="Use 0 to disable unclaimed-deposit tracking.",
            )

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Config:
        """Build a Config from ``SIDECHANNEL_*`` environment variables.

        A ``.env`` file is loaded first when reading the process environment.
        """
        if environ is None:
            load_dotenv()
            environ = os.environ

        raw: dict[str, Any] = {}
        for field in _EnvSettings.model_fields:
            key = f"{ENV_PREFIX}{field.upper()}"
            if key in environ:
                raw[field] = environ[key].strip()

        try:
            settings = _EnvSettings.model_validate(raw)
        except ValidationError as e:
            err = e.errors()[0]
            field = ".".join(str(p) for p in err.get("loc", ()))
            raise ConfigurationError(
                f"Invalid {ENV_PREFIX}{field.upper()}: {err.get('msg')}",
                hint="Booleans accept 1/0/true/false; limits must be integers >= 0.",
            ) from e
        return cls(**settings.model_dump())

    def with_overrides(self, **overrides: Any) -> Config:
        """Return a copy with the given fields replaced."""
        unknown = set(overrides) - set(self.__dataclass_fields__)
        if unknown:
            raise ConfigurationError(
                f"Unknown config field(s): {', '.join(sorted(unknown))}",
                hint=f"Known fields: {', '.join(self.__dataclass_fields__)}",
            )
        return replace(self, **overrides)


class _EnvSettings(BaseModel):
    """Schema wall for string values coming from the environment."""

    capture_location: bool = False
    trace_resolution: bool = False
    diagnostic_limit: int = Field(default=32, ge=0)

    model_config = {"extra": "forbid"}


@cache
def _env_default() -> Config:
    return Config.from_env()


# --- Ambient scope ---

_AMBIENT: contextvars.ContextVar[Config | None] = contextvars.ContextVar(
    "sidechannel_config", default=None
)


def current_config() -> Config:
    """Return the config active in this context.

    Falls back to the environment-derived config, resolved once per process.
    """
    cfg = _AMBIENT.get()
    return cfg if cfg is not None else _env_default()


class ConfigScope:
    """Context manager that sets the ambient config for a block."""

    def __init__(self, cfg: Config):
        self._token: contextvars.Token[Config | None] | None = None
        self._cfg = cfg

    def __enter__(self) -> Config:
        self._token = _AMBIENT.set(self._cfg)
        return self._cfg

    def __exit__(
        self,
        _: type[BaseException] | None,
        __: BaseException | None,
        ___: TracebackType | None,
    ) -> Literal[False]:
        if self._token is not None:
            _AMBIENT.reset(self._token)
        return False


@contextmanager
def config_scope(
    cfg: Config | None = None, **overrides: Any
) -> Generator[Config]:
    """Run a block with a specific config.

    Args:
        cfg: Config to use; defaults to the currently active one.
        **overrides: Field overrides applied on top of ``cfg``.

    Yields:
        The Config active inside the block.
    """
    base = cfg if cfg is not None else current_config()
    effective = base.with_overrides(**overrides) if overrides else base
    with ConfigScope(effective):
        yield effective
