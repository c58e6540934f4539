import unittest
import numpy as np
import sys
import os

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..', '..')))

from wavedecode.dtos import ChannelSpec
from wavedecode.decoder import DecoderMetadata
from wavedecode.frame_decoder import FrameDecoderStream
from wavedecode.decoders.uart import UARTDecoder
from wavedecode.decoders.i2c import I2CDecoder
from wavedecode.services.capture_stream import CaptureStream

SDA = "00100" + "1111000011110000111111111111" + "0000" + "0000" + "11110000111111111111000000000000" + "0011"
SCL = "00110" + "0110011001100110011001100110" + "0110" + "0110" + "01100110011001100110011001100110" + "0111"

# Three 8N1 characters at 8 samples per bit
UART_BITS = "11" + "0" + "10000010" + "1" + "0" + "01000010" + "1" + "1" + "0" + "11000010" + "1" + "11"
UART_LINE = np.array([int(b) for b in UART_BITS for _ in range(8)], dtype=np.uint8)

CURSOR_METADATA = DecoderMetadata(
    name="Cursor Probe",
    input_channels={"d": ChannelSpec("binary")},
    output_channels={"f": ChannelSpec("frame")},
)


class CursorProbe(FrameDecoderStream):
    """Alternates edge waits and fixed waits, noting the cursor after each."""

    def __init__(self):
        self.times = []
        super().__init__(CURSOR_METADATA)

    def frame_decode(self):
        while True:
            yield self.wait_trigger({"edge": {"d": "edge"}})
            self.times.append(self.current_time)
            yield self.wait_time(0.0025)
            self.times.append(self.current_time)


def random_chunks(n, rng, max_chunk=40):
    start = 0
    while start < n:
        size = int(rng.integers(1, max_chunk))
        yield start, min(n, start + size)
        start += size


class TestDecoderInvariants(unittest.TestCase):

    def assertWellFormed(self, waveform):
        """Frames sealed, ordered, non-overlapping."""
        previous_end = None
        for frame in waveform.data:
            self.assertLessEqual(frame.start, frame.end)
            if previous_end is not None:
                self.assertGreaterEqual(frame.start, previous_end)
            previous_end = frame.end

    def test_uart_split_feed_idempotent(self):
        whole = UARTDecoder({"baud_rate": 1000})
        whole.bind_input("data", self._capture({"rx": UART_LINE}, 8000))
        self.assertEqual(whole.get_waveform("bytes").labels,
                         ["START", 0x41, "STOP", "START", 0x42, "STOP", "START", 0x43, "STOP"])

        for seed in range(5):
            with self.subTest(seed=seed):
                rng = np.random.default_rng(seed)
                dec = UARTDecoder({"baud_rate": 1000})
                capture = CaptureStream({"rx": "binary"}, 8000)
                dec.bind_input("data", capture)
                for start, end in random_chunks(len(UART_LINE), rng):
                    capture.push({"rx": UART_LINE[start:end]})

                self.assertEqual(dec.get_waveform("bytes"), whole.get_waveform("bytes"))
                self.assertWellFormed(dec.get_waveform("bytes"))

    def test_i2c_split_feed_idempotent(self):
        scl = np.array([int(c) for c in SCL], dtype=np.uint8)
        sda = np.array([int(c) for c in SDA], dtype=np.uint8)
        whole = I2CDecoder()
        capture = self._capture({"scl": scl, "sda": sda}, 1.0)
        whole.bind_input("scl", capture, "scl")
        whole.bind_input("sda", capture, "sda")

        for seed in range(5):
            with self.subTest(seed=seed):
                rng = np.random.default_rng(seed)
                dec = I2CDecoder()
                capture = CaptureStream({"scl": "binary", "sda": "binary"}, 1.0)
                dec.bind_input("scl", capture, "scl")
                dec.bind_input("sda", capture, "sda")
                for start, end in random_chunks(len(scl), rng, max_chunk=9):
                    capture.push({"scl": scl[start:end], "sda": sda[start:end]})

                for ch in ("bits", "bytes"):
                    self.assertEqual(dec.get_waveform(ch), whole.get_waveform(ch))
                    self.assertWellFormed(dec.get_waveform(ch))

    def test_cursor_never_decreases(self):
        whole = CursorProbe()
        whole.bind_input("d", self._capture({"d": UART_LINE}, 8000))
        self.assertTrue(whole.times)
        self.assertEqual(whole.times, sorted(whole.times))

        rng = np.random.default_rng(7)
        dec = CursorProbe()
        capture = CaptureStream({"d": "binary"}, 8000)
        dec.bind_input("d", capture)
        for start, end in random_chunks(len(UART_LINE), rng):
            capture.push({"d": UART_LINE[start:end]})
        self.assertEqual(dec.times, whole.times)

    def test_redecode_from_start_is_repeatable(self):
        dec = UARTDecoder({"baud_rate": 1000})
        capture = self._capture({"rx": UART_LINE}, 8000)
        dec.bind_input("data", capture)
        first = dec.get_waveform("bytes")

        capture.load({"rx": UART_LINE})
        self.assertEqual(dec.get_waveform("bytes"), first)

    def _capture(self, samples, rate):
        capture = CaptureStream({ch: "binary" for ch in samples}, rate)
        capture.load(samples)
        return capture


if __name__ == '__main__':
    unittest.main()
