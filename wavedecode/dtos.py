from dataclasses import dataclass, field
from typing import Any, ClassVar, Literal, Optional, Tuple, Union
import numpy as np

WaveformKind = Literal["analog", "binary", "frame"]
FrameLabel = Union[str, int]


class ConfigurationError(ValueError):
    """Channel/type mismatch, unknown channel id or malformed declaration."""


def _readonly_samples(data, dtype) -> np.ndarray:
    arr = np.asarray(data, dtype=dtype)
    if arr is data and arr.flags.writeable:
        # Never freeze the caller's array, only our view of it
        arr = arr.view()
    arr.setflags(write=False)
    return arr


@dataclass(frozen=True)
class ChannelSpec:
    """
    Declaration of one stream output or decoder input channel.
    """
    kind: WaveformKind
    name: Optional[str] = None
    description: Optional[str] = None

    def __post_init__(self):
        if self.kind not in ("analog", "binary", "frame"):
            raise ConfigurationError(f"Unknown waveform kind: {self.kind!r}")


@dataclass(frozen=True)
class AnalogWaveform:
    """
    Immutable fixed-rate analog samples. Sample i lies at i / sample_rate.
    """
    kind: ClassVar[str] = "analog"

    data: np.ndarray  # float64, 1D, read-only
    sample_rate: float

    def __post_init__(self):
        arr = _readonly_samples(self.data, np.float64)
        if arr.ndim != 1:
            raise ConfigurationError(f"Waveform samples must be 1D, got {arr.shape}")
        if not self.sample_rate > 0:
            raise ConfigurationError(f"Sample rate must be positive, got {self.sample_rate}")
        object.__setattr__(self, "data", arr)

    def __len__(self) -> int:
        return len(self.data)

    @property
    def duration(self) -> float:
        return len(self.data) / self.sample_rate

    def sample_time(self, index: int) -> float:
        return index / self.sample_rate


@dataclass(frozen=True)
class BinaryWaveform:
    """
    Immutable fixed-rate binary samples (0/1 only).
    """
    kind: ClassVar[str] = "binary"

    data: np.ndarray  # uint8, 1D, read-only
    sample_rate: float

    def __post_init__(self):
        arr = _readonly_samples(self.data, np.uint8)
        if arr.ndim != 1:
            raise ConfigurationError(f"Waveform samples must be 1D, got {arr.shape}")
        if arr.size and arr.max() > 1:
            raise ConfigurationError("Binary waveform samples must be 0 or 1")
        if not self.sample_rate > 0:
            raise ConfigurationError(f"Sample rate must be positive, got {self.sample_rate}")
        object.__setattr__(self, "data", arr)

    def __len__(self) -> int:
        return len(self.data)

    @property
    def duration(self) -> float:
        return len(self.data) / self.sample_rate

    def sample_time(self, index: int) -> float:
        return index / self.sample_rate


@dataclass(frozen=True)
class FrameRecord:
    """
    Sealed, labeled time interval produced by a frame decoder.
    """
    start: float
    end: float
    label: FrameLabel

    def __post_init__(self):
        if self.start > self.end:
            raise ConfigurationError(f"Frame ends before it starts: {self.start} > {self.end}")


@dataclass(frozen=True)
class FrameWaveform:
    """
    Sparse sequence of frames, ordered by start time.
    """
    kind: ClassVar[str] = "frame"

    data: Tuple[FrameRecord, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "data", tuple(self.data))

    def __len__(self) -> int:
        return len(self.data)

    @property
    def labels(self) -> list:
        return [f.label for f in self.data]


Waveform = Union[AnalogWaveform, BinaryWaveform, FrameWaveform]

WAVEFORM_TYPES = {
    "analog": AnalogWaveform,
    "binary": BinaryWaveform,
    "frame": FrameWaveform,
}


@dataclass
class ParameterUpdate:
    """
    Outcome of WaveformStream.try_set_parameter.
    'value' is the value in effect after the attempt.
    """
    parameter_id: str
    applied: bool
    value: Any
    error: Optional[BaseException] = field(default=None, repr=False)
