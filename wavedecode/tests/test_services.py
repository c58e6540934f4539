import unittest
import contextlib
import io
import math
import numpy as np
import sys
import os
import tempfile
import threading
import time
from pathlib import Path
from scipy.io import wavfile

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..', '..')))

from wavedecode.dtos import ConfigurationError
from wavedecode.services.binary_text_stream import BinaryTextStream
from wavedecode.services.sine_stream import SineStream
from wavedecode.services.capture_stream import CaptureStream
from wavedecode.infrastructure.stream_registry import get_stream_list
from wavedecode.tools import decode_capture


class TestSimulatedStreams(unittest.TestCase):

    def test_binary_text(self):
        stream = BinaryTextStream({"data": "01x1", "period": 0.5})
        stream.start()
        w = stream.get_waveform("data")
        self.assertEqual(w.data.tolist(), [0, 1, 0, 1])
        self.assertEqual(w.sample_rate, 2.0)

    def test_sine_chunks_are_continuous(self):
        stream = SineStream({"sample_rate": 4, "frequency": 1}, chunk_samples=4)
        stream.generate_chunk()
        stream.generate_chunk()

        w = stream.get_waveform("sin")
        self.assertEqual(len(w), 8)
        expected = np.sin(2 * math.pi * np.arange(8) / 4)
        self.assertTrue(np.allclose(w.data, expected))

    def test_sine_rate_change_restarts(self):
        stream = SineStream({"sample_rate": 4}, chunk_samples=4)
        stream.generate_chunk()
        self.assertTrue(stream.try_set_parameter("sample_rate", 8).applied)
        stream.generate_chunk()

        w = stream.get_waveform("sin")
        self.assertEqual(len(w), 4)
        self.assertEqual(w.sample_rate, 8)

    def test_sine_parameter_change_from_callback(self):
        stream = SineStream({"sample_rate": 4}, chunk_samples=4)
        changes = []

        def retune(waveform):
            if not changes:
                changes.append(stream.try_set_parameter("sample_rate", 8))

        stream.set_output_callback("sin", retune)
        worker = threading.Thread(target=stream.generate_chunk, daemon=True)
        worker.start()
        worker.join(timeout=2.0)

        self.assertFalse(worker.is_alive())
        self.assertTrue(changes[0].applied)
        stream.generate_chunk()
        self.assertEqual(stream.get_waveform("sin").sample_rate, 8)
        self.assertEqual(len(stream.get_waveform("sin")), 4)

    def test_sine_worker(self):
        stream = SineStream(chunk_samples=16, period=0.01)
        stream.start()
        time.sleep(0.1)
        stream.stop()

        self.assertIsNone(stream.worker_thread)
        self.assertGreaterEqual(len(stream.get_waveform("sin")), 16)
        self.assertEqual(len(stream.get_waveform("sin")) % 16, 0)

    def test_registered(self):
        streams = get_stream_list()
        self.assertIn("Sine", [e.metadata.name for e in streams["Simulated"]])
        self.assertIn("Binary from text", [e.metadata.name for e in streams["Simulated"]])


class TestCaptureStream(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.dir = Path(self.tmp.name)

    def tearDown(self):
        self.tmp.cleanup()

    def test_from_wav_analog(self):
        path = self.dir / "mono.wav"
        wavfile.write(path, 1000, np.array([0, 100, -100, 32767], dtype=np.int16))

        capture = CaptureStream.from_wav(path)
        w = capture.get_waveform("ch0")
        self.assertEqual(w.kind, "analog")
        self.assertEqual(w.sample_rate, 1000.0)
        self.assertEqual(w.data.tolist(), [0.0, 100.0, -100.0, 32767.0])

    def test_from_wav_threshold(self):
        path = self.dir / "stereo.wav"
        data = np.array([[0, 20000], [20000, 0], [20000, 20000]], dtype=np.int16)
        wavfile.write(path, 8000, data)

        capture = CaptureStream.from_wav(path, threshold=10000)
        self.assertEqual(list(capture.metadata.output_channels), ["ch0", "ch1"])
        self.assertEqual(capture.get_waveform("ch0").data.tolist(), [0, 1, 1])
        self.assertEqual(capture.get_waveform("ch1").data.tolist(), [1, 0, 1])
        self.assertEqual(capture.get_waveform("ch1").kind, "binary")

    def test_from_text(self):
        capture = CaptureStream.from_text({"rx": "0101 1100"}, 10.0)
        self.assertEqual(capture.get_waveform("rx").data.tolist(), [0, 1, 0, 1, 1, 1, 0, 0])

        with self.assertRaises(ConfigurationError):
            CaptureStream.from_text({"rx": "0102"}, 10.0)

    def test_push_and_load(self):
        capture = CaptureStream({"v": "analog"}, 10.0)
        capture.push({"v": [0.5]})
        capture.push({"v": [0.25]})
        self.assertEqual(capture.get_waveform("v").data.tolist(), [0.5, 0.25])
        capture.load({"v": [1.0]})
        self.assertEqual(capture.get_waveform("v").data.tolist(), [1.0])

        with self.assertRaises(ConfigurationError):
            CaptureStream({"f": "frame"}, 10.0)


class TestDecodeCaptureTool(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.dir = Path(self.tmp.name)

    def tearDown(self):
        self.tmp.cleanup()

    def run_tool(self, argv):
        out = io.StringIO()
        with contextlib.redirect_stdout(out):
            code = decode_capture.main(argv)
        return code, out.getvalue()

    def test_uart_text_capture(self):
        bits = "1" + "0" + "10000010" + "1" + "1"
        path = self.dir / "uart.txt"
        path.write_text("# uart capture\nrx " + "".join(b * 8 for b in bits) + "\n")

        code, out = self.run_tool(["uart", str(path), "--rate", "8000", "--map", "data=rx",
                                   "--param", "baud_rate=1000"])
        self.assertEqual(code, 0)
        labels = [line.split("\t")[-1] for line in out.splitlines()]
        self.assertEqual(labels, ["START", "0x41", "STOP"])

    def test_i2c_wav_capture(self):
        scl = "00110" + "0110011001100110011001100110" + "0110"
        sda = "00100" + "1111000011110000111111111111" + "0000"
        samples = np.array([[int(c) * 1000, int(d) * 1000] for c, d in zip(scl, sda)], dtype=np.int16)
        path = self.dir / "i2c.wav"
        wavfile.write(path, 1000, samples)

        code, out = self.run_tool(["i2c", str(path), "--threshold", "500", "--map", "scl=ch0", "--map", "sda=ch1"])
        self.assertEqual(code, 0)
        byte_labels = [line.split("\t")[-1] for line in out.splitlines() if line.startswith("bytes")]
        self.assertEqual(byte_labels, ["START", "0x57", "W"])

    def test_bad_arguments(self):
        path = self.dir / "empty.txt"
        path.write_text("")
        with self.assertLogs("DecodeCapture", level="ERROR"):
            code, _ = self.run_tool(["uart", str(path)])
        self.assertEqual(code, 2)

        with self.assertLogs("DecodeCapture", level="ERROR"):
            code, _ = self.run_tool(["spi", str(path), "--rate", "1"])
        self.assertEqual(code, 2)


if __name__ == '__main__':
    unittest.main()
