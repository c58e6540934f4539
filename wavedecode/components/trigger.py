from dataclasses import dataclass
from typing import Any, Dict, Literal, Mapping, Optional, Union
from pydantic import BaseModel, ConfigDict, StrictFloat, StrictInt, ValidationError, model_validator
from wavedecode.dtos import ConfigurationError


@dataclass(frozen=True)
class Level:
    """Binary line is at `value`."""
    value: int

    kinds = ("binary",)

    def check(self, prev, value) -> bool:
        return value == self.value


@dataclass(frozen=True)
class Edge:
    """Binary transition into the current sample."""
    direction: Literal["rising", "falling", "any"]

    kinds = ("binary",)

    def check(self, prev, value) -> bool:
        if self.direction == "rising":
            return prev == 0 and value == 1
        if self.direction == "falling":
            return prev == 1 and value == 0
        return prev != value


@dataclass(frozen=True)
class Threshold:
    """Analog sample at/above ("high") or at/below ("low") a threshold."""
    thresh: float
    level: Literal["high", "low"] = "high"

    kinds = ("analog",)

    def check(self, prev, value) -> bool:
        if self.level == "high":
            return value >= self.thresh
        return value <= self.thresh


@dataclass(frozen=True)
class ThresholdCross:
    """Analog signal crosses a threshold between the previous and current sample."""
    thresh: float
    direction: Literal["rising", "falling", "any"] = "rising"

    kinds = ("analog",)

    def check(self, prev, value) -> bool:
        rising = prev < self.thresh <= value
        falling = prev > self.thresh >= value
        if self.direction == "rising":
            return rising
        if self.direction == "falling":
            return falling
        return rising or falling


Condition = Union[Level, Edge, Threshold, ThresholdCross]


class AnalogTriggerSpec(BaseModel):
    """{"thresh": x, "level": "high"|"low"} or {"thresh": x, "cross": "rising"|"falling"|"any"}."""
    model_config = ConfigDict(extra="forbid", frozen=True)

    thresh: Union[StrictInt, StrictFloat]
    level: Optional[Literal["high", "low"]] = None
    cross: Optional[Literal["rising", "falling", "any"]] = None

    @model_validator(mode="after")
    def _level_or_cross(self):
        if self.level is not None and self.cross is not None:
            raise ValueError("Give either level or cross, not both")
        return self


_BINARY_SHORTHANDS = {
    "high": Level(1),
    "low": Level(0),
    "rising": Edge("rising"),
    "falling": Edge("falling"),
    "edge": Edge("any"),
}


def parse_condition(spec: Any) -> Condition:
    """
    Accepts a Condition, a binary shorthand ("high", "low", "rising", "falling", "edge")
    or an analog mapping {"thresh": x, "level": "high"|"low"} / {"thresh": x, "cross": "rising"|"falling"|"any"}.
    """
    if isinstance(spec, (Level, Edge, Threshold, ThresholdCross)):
        return spec
    if isinstance(spec, str):
        try:
            return _BINARY_SHORTHANDS[spec]
        except KeyError:
            raise ConfigurationError(f"Unknown trigger {spec!r}") from None
    if isinstance(spec, Mapping):
        try:
            analog = AnalogTriggerSpec.model_validate(dict(spec))
        except ValidationError as e:
            raise ConfigurationError(f"Invalid analog trigger {dict(spec)!r}: {e}") from None
        if analog.cross is not None:
            return ThresholdCross(float(analog.thresh), analog.cross)
        return Threshold(float(analog.thresh), analog.level or "high")
    raise ConfigurationError(f"Unknown trigger {spec!r}")


def parse_trigger_sets(
    trigger_sets: Mapping[str, Mapping[str, Any]],
    input_kinds: Mapping[str, str],
) -> Dict[str, Dict[str, Condition]]:
    """
    Normalize {set_name: {channel: condition}} and check every condition
    against the kind of the channel it is attached to.
    Declaration order of sets and channels is kept.
    """
    if not trigger_sets:
        raise ConfigurationError("Empty trigger set")

    parsed: Dict[str, Dict[str, Condition]] = {}
    for name, channel_conditions in trigger_sets.items():
        if not channel_conditions:
            raise ConfigurationError(f"Trigger set {name!r} has no conditions")
        parsed[name] = {}
        for ch, spec in channel_conditions.items():
            if ch not in input_kinds:
                raise ConfigurationError(f"Trigger set {name!r}: unknown input channel {ch!r}")
            condition = parse_condition(spec)
            if input_kinds[ch] not in condition.kinds:
                raise ConfigurationError(
                    f"Trigger set {name!r}: {type(condition).__name__} does not apply to "
                    f"{input_kinds[ch]} channel {ch!r}"
                )
            parsed[name][ch] = condition
    return parsed
