import numpy as np
import logging
import threading
from typing import Optional, Union
from wavedecode.dtos import AnalogWaveform, BinaryWaveform, ConfigurationError
from wavedecode import config

logger = logging.getLogger("SampleBuffer")

SampledWaveform = Union[AnalogWaveform, BinaryWaveform]


class DiscontinuityError(Exception):
    pass


class SampleBuffer:
    """
    SampleBuffer: materialized samples of one analog/binary stream channel.

    Responsibility:
    - Growing buffer indexed by absolute sample number (index 0 = time 0).
    - Thread-safe access (producer threads push, decoders snapshot).
    - Strict continuity: appended chunks land at the head and must keep the rate.
    - Snapshots are immutable; later pushes never alter an earlier snapshot's view.
    """

    DTYPES = {"analog": np.float64, "binary": np.uint8}

    def __init__(self, kind: str, capacity: int = config.INITIAL_BUFFER_CAPACITY):
        if kind not in self.DTYPES:
            raise ConfigurationError(f"SampleBuffer holds analog/binary samples, not {kind!r}")
        if capacity <= 0:
            raise ValueError("Capacity must be positive")

        self.kind = kind
        self.sample_rate: Optional[float] = None

        # Buffer Storage
        self.buffer = np.zeros(capacity, dtype=self.DTYPES[kind])

        # Pointer (Absolute Sample Index of next sample)
        self.head = 0

        # Thread Safety
        self._lock = threading.Lock()

    def push(self, waveform: SampledWaveform):
        """Append a chunk at the head. Thread-safe."""
        self._check_kind(waveform)

        with self._lock:
            if self.sample_rate is None:
                # First chunk determines the rate
                self.sample_rate = waveform.sample_rate
            elif waveform.sample_rate != self.sample_rate:
                msg = f"Sample rate changed mid-stream: {self.sample_rate} -> {waveform.sample_rate}"
                logger.error(msg)
                raise DiscontinuityError(msg)

            self._write_chunk(waveform.data)

    def replace(self, waveform: SampledWaveform):
        """Drop everything buffered and start over with this waveform."""
        self._check_kind(waveform)

        with self._lock:
            self.head = 0
            self.sample_rate = waveform.sample_rate
            # Fresh array: snapshots of the old contents stay valid
            self.buffer = np.zeros(max(len(waveform), len(self.buffer)), dtype=self.buffer.dtype)
            self._write_chunk(waveform.data)

    def snapshot(self) -> Optional[SampledWaveform]:
        """
        Immutable waveform over all buffered samples.
        Returns None if nothing was ever pushed.
        """
        with self._lock:
            if self.sample_rate is None:
                return None
            view = self.buffer[:self.head]
            if self.kind == "analog":
                return AnalogWaveform(view, self.sample_rate)
            return BinaryWaveform(view, self.sample_rate)

    def _check_kind(self, waveform):
        if getattr(waveform, "kind", None) != self.kind:
            raise ConfigurationError(
                f"SampleBuffer({self.kind}) cannot take a {getattr(waveform, 'kind', type(waveform).__name__)} waveform"
            )

    def _write_chunk(self, samples: np.ndarray):
        count = len(samples)
        if count == 0:
            return

        end = self.head + count
        if end > len(self.buffer):
            # Grow into a new array. Existing snapshots keep pointing at the old one.
            new_capacity = len(self.buffer)
            while new_capacity < end:
                new_capacity *= 2
            grown = np.zeros(new_capacity, dtype=self.buffer.dtype)
            grown[:self.head] = self.buffer[:self.head]
            self.buffer = grown
            logger.debug(f"Grew buffer to {new_capacity} samples")

        self.buffer[self.head:end] = samples
        self.head = end
