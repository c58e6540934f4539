import logging
from wavedecode.dtos import ChannelSpec
from wavedecode.decoder import DecoderMetadata
from wavedecode.frame_decoder import FrameDecoderStream
from wavedecode.infrastructure.stream_registry import register_stream

logger = logging.getLogger("I2CDecoder")

I2C_METADATA = DecoderMetadata(
    name="I2C Decoder",
    input_channels={
        "scl": ChannelSpec("binary", name="SCL"),
        "sda": ChannelSpec("binary", name="SDA"),
    },
    output_channels={
        "bits": ChannelSpec("frame", name="Bits"),
        "bytes": ChannelSpec("frame", name="Bytes"),
    },
)

# First bit of a byte (or the ACK bit) is tentative until SCL falls:
# an SDA edge while SCL is high is a repeated START or a STOP instead.
_BIT_END = {
    "NEXT_BIT": {"scl": "falling"},
    "REP_START": {"sda": "falling"},
    "STOP": {"sda": "rising"},
}


class I2CDecoder(FrameDecoderStream):
    """
    I2CDecoder: two-wire bus (7-bit addressing, MSB first).

    Responsibility:
    - bytes: START, address, R/W, ACK/NACK, data bytes, RS (repeated start), STOP.
    - bits: one frame per SDA bit, spanning SCL high.

    Rules:
    - Data is sampled on SCL rising edges.
    - SDA falling while SCL high is START, SDA rising while SCL high is STOP.
    """

    def __init__(self, parameters=None):
        super().__init__(I2C_METADATA, parameters)

    def frame_decode(self):
        yield self.wait_trigger({"IDLE": {"sda": "high", "scl": "high"}})

        state = "WAIT_START"
        expect_address = False

        while True:
            if state == "WAIT_START":
                yield self.wait_trigger({"START": {"sda": "falling", "scl": "high"}})
                self.start_frame("bytes", "START")
                yield self.wait_trigger({"SCL_LOW": {"scl": "low"}})
                self.end_frame("bytes")
                expect_address = True
                state = "READ_BYTE"

            elif state == "READ_BYTE":
                _, samples = yield self.wait_trigger({"BIT": {"scl": "rising"}})
                self.start_frame("bytes")
                self.start_frame("bits", samples["sda"])
                byte = samples["sda"]

                condition, _ = yield self.wait_trigger(_BIT_END)
                if condition == "STOP":
                    self.discard_frame("bits")
                    self.end_frame("bytes", "STOP")
                    state = "WAIT_START"
                    continue
                if condition == "REP_START":
                    yield from self._repeated_start()
                    expect_address = True
                    continue
                self.end_frame("bits")

                for i in range(1, 8):
                    _, samples = yield self.wait_trigger({"BIT": {"scl": "rising"}})
                    bit = samples["sda"]
                    self.start_frame("bits", bit)
                    byte = (byte << 1) | bit

                    if expect_address and i == 7:
                        # Last bit of an address byte is the direction
                        self.end_frame("bytes", byte >> 1)
                        self.start_frame("bytes", "R" if bit else "W")

                    yield self.wait_trigger({"BIT_END": {"scl": "falling"}})
                    self.end_frame("bits")

                if expect_address:
                    self.end_frame("bytes")
                    logger.debug(f"Address 0x{byte >> 1:02X} {'R' if byte & 1 else 'W'}")
                else:
                    self.end_frame("bytes", byte)
                expect_address = False
                state = "WAIT_ACK"

            elif state == "WAIT_ACK":
                _, samples = yield self.wait_trigger({"BIT": {"scl": "rising"}})
                ack = samples["sda"]
                self.start_frame("bytes", "NACK" if ack else "ACK")
                self.start_frame("bits", ack)

                condition, _ = yield self.wait_trigger(
                    {"ACK_END": _BIT_END["NEXT_BIT"], "REP_START": _BIT_END["REP_START"], "STOP": _BIT_END["STOP"]}
                )
                if condition == "STOP":
                    self.discard_frame("bits")
                    self.end_frame("bytes", "STOP")
                    state = "WAIT_START"
                    continue
                if condition == "REP_START":
                    yield from self._repeated_start()
                    expect_address = True
                    state = "READ_BYTE"
                    continue
                self.end_frame("bits")
                self.end_frame("bytes")
                state = "READ_BYTE"

    def _repeated_start(self):
        """Turns the open bytes frame into an RS frame ending when SCL goes low."""
        self.discard_frame("bits")
        yield self.wait_trigger({"SCL_LOW": {"scl": "low"}})
        self.end_frame("bytes", "RS")


register_stream("Decoder", I2C_METADATA, I2CDecoder)
