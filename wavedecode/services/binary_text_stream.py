import logging
import numpy as np
from wavedecode.dtos import BinaryWaveform, ChannelSpec
from wavedecode.parameters import NumberParameter, TextParameter
from wavedecode.stream import StreamMetadata, WaveformStream
from wavedecode.infrastructure.stream_registry import register_stream

logger = logging.getLogger("BinaryTextStream")

BINARY_TEXT_METADATA = StreamMetadata(
    name="Binary from text",
    parameters={
        "data": TextParameter(
            name="Binary data",
            description="Sequence of zeros and ones without whitespace",
            max_length=1_000_000,
            default="01010101",
        ),
        "period": NumberParameter(name="Time between two samples", min=1e-12, max=1e3, default=1),
    },
    output_channels={"data": ChannelSpec("binary", name="Data")},
)


class BinaryTextStream(WaveformStream):
    """
    Emits the `data` text as one binary waveform at 1 / period samples per second.
    Any character other than '1' is a 0 sample.
    """

    def __init__(self, parameters=None):
        super().__init__(BINARY_TEXT_METADATA, parameters)

    def start(self):
        p = self.get_parameter_values()
        samples = np.fromiter((c == "1" for c in p["data"]), dtype=np.uint8, count=len(p["data"]))
        logger.info(f"Emitting {len(samples)} samples at {1 / p['period']:g} Hz")
        self.on_waveform_ready({"data": BinaryWaveform(samples, 1 / p["period"])})


register_stream("Simulated", BINARY_TEXT_METADATA, BinaryTextStream)
