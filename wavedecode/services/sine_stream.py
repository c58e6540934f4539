import logging
import math
import threading
import numpy as np
from wavedecode.dtos import AnalogWaveform, ChannelSpec
from wavedecode.parameters import NumberParameter
from wavedecode.stream import StreamMetadata, WaveformStream
from wavedecode.infrastructure.stream_registry import register_stream
from wavedecode import config

logger = logging.getLogger("SineStream")

SINE_METADATA = StreamMetadata(
    name="Sine",
    parameters={
        "amplitude": NumberParameter(name="Amplitude", min=0, max=1e6, default=1),
        "frequency": NumberParameter(name="Frequency", min=0, max=1e10, default=1e3),
        "phase": NumberParameter(name="Phase", min=0, max=2 * math.pi, default=0),
        "sample_rate": NumberParameter(name="Sample Rate", min=1, max=1e10, step=1, default=1e4),
    },
    output_channels={"sin": ChannelSpec("analog", name="Sin")},
)


class SineStream(WaveformStream):
    """
    SineStream: simulated analog source.

    Responsibility:
    - Generates fixed-size chunks of amplitude * sin(2*pi*f*t + phase).
    - Sample offset carries across chunks, so chunks append seamlessly.
    - Optional worker thread produces one chunk per generation period.

    Rules:
    - A sample rate change restarts the waveform at t = 0 (replace, not append).
    """

    def __init__(self, parameters=None, chunk_samples: int = config.SINE_CHUNK_SAMPLES,
                 period: float = config.SINE_GENERATION_PERIOD):
        super().__init__(SINE_METADATA, parameters)
        self.chunk_samples = chunk_samples
        self.period = period

        self.sample_offset = 0
        self._restart = False
        self._lock = threading.Lock()

        self.running = False
        self.worker_thread = None
        self._stop_event = threading.Event()

    def generate_chunk(self):
        """Produce and emit the next chunk. Thread-safe; emission happens outside the lock."""
        with self._lock:
            p = self.get_parameter_values()
            if self._restart:
                self.sample_offset = 0

            t = (self.sample_offset + np.arange(self.chunk_samples)) / p["sample_rate"]
            samples = p["amplitude"] * np.sin(2 * math.pi * p["frequency"] * t + p["phase"])

            append = not self._restart
            self._restart = False
            self.sample_offset += self.chunk_samples
            waveform = AnalogWaveform(samples, p["sample_rate"])

        # Consumers may change parameters from their callbacks
        self.on_waveform_ready({"sin": waveform}, append=append)

    def on_set_parameter(self, parameter_id, value):
        if parameter_id == "sample_rate":
            with self._lock:
                self._restart = True

    def start(self):
        if self.running:
            return
        self.running = True
        self._stop_event.clear()
        self.worker_thread = threading.Thread(target=self._worker_loop, daemon=True, name="SineWorker")
        self.worker_thread.start()
        logger.info("Sine Worker Started")

    def stop(self):
        self.running = False
        self._stop_event.set()
        if self.worker_thread:
            self.worker_thread.join(timeout=2.0)
            self.worker_thread = None
        logger.info("Sine Worker Stopped")

    def _worker_loop(self):
        while self.running:
            try:
                self.generate_chunk()
            except Exception as e:
                logger.error(f"Sine Worker Error: {e}")
            if self._stop_event.wait(self.period):
                break


register_stream("Simulated", SINE_METADATA, SineStream)
