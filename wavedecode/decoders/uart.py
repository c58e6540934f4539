import logging
from wavedecode.dtos import ChannelSpec
from wavedecode.decoder import DecoderMetadata
from wavedecode.frame_decoder import FrameDecoderStream
from wavedecode.parameters import NumberParameter, SelectParameter
from wavedecode.infrastructure.stream_registry import register_stream

logger = logging.getLogger("UARTDecoder")

UART_METADATA = DecoderMetadata(
    name="UART Decoder",
    parameters={
        "baud_rate": NumberParameter(name="Baud rate", min=1, max=1e6, step=100, default=115200),
        "data_bits": SelectParameter(name="Data bits", options=[7, 8, 9], default=8),
        "parity": SelectParameter(name="Parity bit", options=["NONE", "EVEN", "ODD"], default="NONE"),
        "stop_bits": SelectParameter(name="Stop bits", options=[1, 2], default=1),
        "bit_order": SelectParameter(name="Bit order", options=["LSB", "MSB"], default="LSB"),
    },
    input_channels={"data": ChannelSpec("binary", name="TX/RX")},
    output_channels={"bytes": ChannelSpec("frame", name="Bytes")},
)


class UARTDecoder(FrameDecoderStream):
    """
    UARTDecoder: asynchronous serial (8N1 and friends) on one binary line.

    Per character: START frame (one bit), data frame labeled with the value,
    optional PARITY OK / PARITY ERROR frame, STOP (or FRAME ERROR) frame.
    Data bits are sampled mid-bit.
    """

    def __init__(self, parameters=None):
        super().__init__(UART_METADATA, parameters)

    def frame_decode(self):
        p = self.get_parameter_values()
        full_bit = 1.0 / p["baud_rate"]
        half_bit = full_bit / 2
        data_bits = p["data_bits"]
        msb_first = p["bit_order"] == "MSB"

        # Line must be idle before the first start bit can be trusted
        yield self.wait_trigger({"idle": {"data": "high"}})

        while True:
            # 1. Start bit
            yield self.wait_trigger({"start": {"data": "falling"}})
            self.start_frame("bytes", "START")
            yield self.wait_time(full_bit)
            self.end_frame("bytes")

            # 2. Data bits, sampled in the middle of each bit
            self.start_frame("bytes")
            value = 0
            for i in range(data_bits):
                samples = yield self.wait_time(half_bit if i == 0 else full_bit)
                bit = samples["data"]
                if msb_first:
                    value = (value << 1) | bit
                else:
                    value |= bit << i
            yield self.wait_time(half_bit)
            self.end_frame("bytes", value)

            # 3. Parity
            if p["parity"] != "NONE":
                self.start_frame("bytes")
                samples = yield self.wait_time(half_bit)
                ones = bin(value).count("1") + samples["data"]
                parity_ok = (ones % 2 == 1) == (p["parity"] == "ODD")
                yield self.wait_time(half_bit)
                self.end_frame("bytes", "PARITY OK" if parity_ok else "PARITY ERROR")

            # 4. Stop bit(s): line must stay high
            self.start_frame("bytes")
            stop_ok = True
            for i in range(p["stop_bits"]):
                samples = yield self.wait_time(half_bit if i == 0 else full_bit)
                stop_ok = stop_ok and samples["data"] == 1
            # Seals on the sample right after the stop bit; a capture ending
            # exactly on the stop bit leaves this frame open
            yield self.wait_time(half_bit)
            if not stop_ok:
                logger.debug(f"Stop bit low at t={self.current_time:.9f}s")
            self.end_frame("bytes", "STOP" if stop_ok else "FRAME ERROR")


register_stream("Decoder", UART_METADATA, UARTDecoder)
