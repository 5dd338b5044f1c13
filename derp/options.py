"""Apply-time option flags and their resolved configuration."""

from __future__ import annotations

import logging
import math
import os
from enum import Enum
from typing import Iterable, Optional

import pydantic
from pydantic import BaseModel, ConfigDict, Field, field_validator

from .errors import ValidationError

logger = logging.getLogger(__name__)

#: Environment variable overriding the detected CPU count.
MAX_PROCS_ENV = "DERP_MAX_PROCS"


class ClonePolicy(Enum):
    """How the input is copied into the working set."""

    NO_COPY = "nocopy"
    CLONE = "clone"
    DEEP_CLONE_CYCLES = "dpc"


class Option(Enum):
    """Flags accepted by ``Pipeline.apply``.

    At most one flag per category may be passed to a single call:

    - clone: ``NO_COPY``, ``CLONE``, ``DEEP_CLONE_CYCLES``
    - throttle: ``POWER_25``, ``POWER_50``, ``POWER_75``, ``POWER_100``
    - foreach: ``CONCURRENT_FOREACH``
    - reduce: ``PARALLEL_REDUCE``
    - lifecycle: ``RESET``
    """

    NO_COPY = "nocopy"
    CLONE = "clone"
    DEEP_CLONE_CYCLES = "dpc"
    CONCURRENT_FOREACH = "cfe"
    PARALLEL_REDUCE = "preduce"
    POWER_25 = "power-25"
    POWER_50 = "power-50"
    POWER_75 = "power-75"
    POWER_100 = "power-100"
    RESET = "reset"

    @property
    def category(self) -> str:
        return _CATEGORIES[self]


_CATEGORIES: dict[Option, str] = {
    Option.NO_COPY: "clone",
    Option.CLONE: "clone",
    Option.DEEP_CLONE_CYCLES: "clone",
    Option.CONCURRENT_FOREACH: "foreach",
    Option.PARALLEL_REDUCE: "reduce",
    Option.POWER_25: "throttle",
    Option.POWER_50: "throttle",
    Option.POWER_75: "throttle",
    Option.POWER_100: "throttle",
    Option.RESET: "lifecycle",
}

_CLONE_POLICIES: dict[Option, ClonePolicy] = {
    Option.NO_COPY: ClonePolicy.NO_COPY,
    Option.CLONE: ClonePolicy.CLONE,
    Option.DEEP_CLONE_CYCLES: ClonePolicy.DEEP_CLONE_CYCLES,
}

_THROTTLES: dict[Option, float] = {
    Option.POWER_25: 0.25,
    Option.POWER_50: 0.5,
    Option.POWER_75: 0.75,
    Option.POWER_100: 1.0,
}


def available_parallelism() -> int:
    """Number of CPUs the executor may use.

    ``DERP_MAX_PROCS`` overrides the detected count when set to a positive
    integer; anything else is ignored with a warning.
    """
    raw = os.environ.get(MAX_PROCS_ENV)
    if raw:
        try:
            value = int(raw)
        except ValueError:
            value = 0
        if value >= 1:
            return value
        logger.warning("Ignoring invalid %s=%r", MAX_PROCS_ENV, raw)
    return os.cpu_count() or 1


class ApplyConfig(BaseModel):
    """Resolved, validated option set for one ``apply`` call."""

    model_config = ConfigDict(frozen=True)

    clone_policy: Optional[ClonePolicy] = Field(
        default=None, description="Explicit clone policy; None means infer"
    )
    throttle: float = Field(default=1.0, description="Fraction of parallelism")
    concurrent_foreach: bool = False
    parallel_reduce: bool = False
    reset: bool = False
    parallelism: int = Field(
        default_factory=available_parallelism,
        ge=1,
        description="Available hardware parallelism before throttling",
    )

    @field_validator("throttle")
    @classmethod
    def _known_throttle(cls, value: float) -> float:
        if value not in _THROTTLES.values():
            raise ValueError(
                f"throttle must be one of {sorted(_THROTTLES.values())}, got {value}"
            )
        return value

    @property
    def num_workers(self) -> int:
        return max(1, math.ceil(self.parallelism * self.throttle))

    @classmethod
    def from_options(
        cls, options: Iterable[Option], parallelism: int | None = None
    ) -> "ApplyConfig":
        """Build a config from *options*, enforcing one flag per category.

        Raises ``ValidationError`` on conflicting flags, unknown values, or a
        *parallelism* below 1.
        """
        chosen: dict[str, Option] = {}
        for opt in options:
            if not isinstance(opt, Option):
                raise ValidationError(f"Unknown option {opt!r}.")
            previous = chosen.get(opt.category)
            if previous is not None and previous is not opt:
                raise ValidationError(
                    f"Cannot combine {previous.name} and {opt.name}: "
                    f"both set the {opt.category} option."
                )
            chosen[opt.category] = opt

        fields: dict = {
            "concurrent_foreach": "foreach" in chosen,
            "parallel_reduce": "reduce" in chosen,
            "reset": "lifecycle" in chosen,
        }
        if "clone" in chosen:
            fields["clone_policy"] = _CLONE_POLICIES[chosen["clone"]]
        if "throttle" in chosen:
            fields["throttle"] = _THROTTLES[chosen["throttle"]]
        if parallelism is not None:
            fields["parallelism"] = parallelism

        try:
            return cls(**fields)
        except pydantic.ValidationError as exc:
            raise ValidationError(str(exc)) from exc
