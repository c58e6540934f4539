import logging
from pathlib import Path
from typing import Dict, Mapping, Optional
import numpy as np
from scipy.io import wavfile
from wavedecode.dtos import ChannelSpec, ConfigurationError, WAVEFORM_TYPES, WaveformKind
from wavedecode.stream import StreamMetadata, WaveformStream

logger = logging.getLogger("CaptureStream")


class CaptureStream(WaveformStream):
    """
    CaptureStream: recorded or scripted samples fed in by the caller.

    Responsibility:
    - One output channel per captured signal, all at one sample rate.
    - push() appends (live feed), load() replaces (new capture).
    - Loaders for WAV files and 0/1 text.
    """

    def __init__(self, channels: Mapping[str, WaveformKind], sample_rate: float, name: str = "Capture"):
        for ch, kind in channels.items():
            if kind == "frame":
                raise ConfigurationError(f"Capture channel {ch!r} must be analog or binary")
        metadata = StreamMetadata(
            name=name,
            output_channels={ch: ChannelSpec(kind, name=ch) for ch, kind in channels.items()},
        )
        super().__init__(metadata)
        self.sample_rate = sample_rate

    def push(self, samples: Mapping[str, np.ndarray]):
        """Append samples to some or all channels."""
        self.on_waveform_ready(self._to_waveforms(samples), append=True)

    def load(self, samples: Mapping[str, np.ndarray]):
        """Replace the samples of some or all channels."""
        self.on_waveform_ready(self._to_waveforms(samples), append=False)

    def _to_waveforms(self, samples):
        waveforms = {}
        for ch, data in samples.items():
            kind = self._output_spec(ch).kind
            waveforms[ch] = WAVEFORM_TYPES[kind](np.asarray(data), self.sample_rate)
        return waveforms

    # --- Loaders ---

    @classmethod
    def from_wav(cls, path, threshold: Optional[float] = None) -> "CaptureStream":
        """
        One channel per WAV channel, named ch0, ch1, ...
        With a threshold, channels are binary (sample >= threshold, in raw file units).
        """
        path = Path(path)
        rate, data = wavfile.read(path)
        if data.ndim == 1:
            data = data[:, np.newaxis]

        samples = data.astype(np.float64)
        names = [f"ch{i}" for i in range(samples.shape[1])]
        kind = "analog" if threshold is None else "binary"

        capture = cls({ch: kind for ch in names}, float(rate), name=path.name)
        if threshold is not None:
            samples = (samples >= threshold).astype(np.uint8)
        capture.load({ch: samples[:, i] for i, ch in enumerate(names)})

        logger.info(f"Loaded {path.name}: {len(names)} {kind} channel(s), {samples.shape[0]} samples @ {rate} Hz")
        return capture

    @classmethod
    def from_text(cls, channels: Mapping[str, str], sample_rate: float) -> "CaptureStream":
        """Binary channels from strings of '0'/'1' (whitespace ignored)."""
        parsed: Dict[str, np.ndarray] = {}
        for ch, text in channels.items():
            bits = "".join(text.split())
            if set(bits) - {"0", "1"}:
                raise ConfigurationError(f"Channel {ch!r}: text capture may only contain 0 and 1")
            parsed[ch] = np.frombuffer(bits.encode("ascii"), dtype=np.uint8) - ord("0")

        capture = cls({ch: "binary" for ch in channels}, sample_rate)
        capture.load(parsed)
        return capture
