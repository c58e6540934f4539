import argparse
import logging
import os
import sys
from pathlib import Path
from typing import Any, Dict, List

from dotenv import load_dotenv

# Add project root to sys.path
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..', '..')))

from wavedecode import config
from wavedecode.dtos import ConfigurationError
from wavedecode.infrastructure.stream_registry import StreamEntry, get_stream_list
from wavedecode.services.capture_stream import CaptureStream
import wavedecode.decoders.uart  # noqa: F401  (registers the decoder)
import wavedecode.decoders.i2c  # noqa: F401

logger = logging.getLogger("DecodeCapture")


def _parse_value(text: str) -> Any:
    for convert in (int, float):
        try:
            return convert(text)
        except ValueError:
            pass
    return text


def _parse_pairs(pairs: List[str], what: str) -> Dict[str, str]:
    parsed = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise ConfigurationError(f"Bad {what} {pair!r}, expected name=value")
        parsed[key] = value
    return parsed


def find_decoder(name: str) -> StreamEntry:
    """Registered decoder by exact name, or unique case-insensitive prefix ("uart")."""
    entries = get_stream_list().get("Decoder", [])
    for entry in entries:
        if entry.metadata.name == name:
            return entry
    matches = [e for e in entries if e.metadata.name.lower().startswith(name.lower())]
    if len(matches) != 1:
        known = ", ".join(e.metadata.name for e in entries)
        raise ConfigurationError(f"No unique decoder matching {name!r} (available: {known})")
    return matches[0]


def read_text_capture(path: Path) -> Dict[str, str]:
    """Lines of 'channel 0101...'; blank lines and # comments are skipped."""
    channels = {}
    for line in path.read_text().splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        name, _, bits = line.partition(" ")
        channels[name] = channels.get(name, "") + bits
    return channels


def load_capture(path: Path, rate: float = None, threshold: float = None) -> CaptureStream:
    if path.suffix.lower() == ".wav":
        return CaptureStream.from_wav(path, threshold=threshold)
    if rate is None:
        raise ConfigurationError("Text captures need --rate")
    return CaptureStream.from_text(read_text_capture(path), rate)


def decode_capture(decoder_name: str, capture: CaptureStream, mapping: Dict[str, str], params: Dict[str, Any]):
    """Bind a registered decoder to the capture and return it after decoding."""
    entry = find_decoder(decoder_name)
    decoder = entry.factory(params)

    for channel in entry.metadata.input_channels:
        source_channel = mapping.get(channel, channel)
        decoder.bind_input(channel, capture, source_channel)
    return decoder


def main(argv=None) -> int:
    load_dotenv()

    parser = argparse.ArgumentParser(description="Decode a captured waveform file with a protocol decoder")
    parser.add_argument("decoder", help="Decoder name or prefix (e.g. 'uart', 'i2c')")
    parser.add_argument("capture", help="WAV file or text capture ('channel 0101...' per line)")
    parser.add_argument("--rate", type=float, help="Sample rate of a text capture (Hz)")
    parser.add_argument("--threshold", type=float, help="Quantize WAV channels to binary at this level")
    parser.add_argument("--map", action="append", default=[], metavar="INPUT=CHANNEL",
                        help="Bind a decoder input to a capture channel (default: same name)")
    parser.add_argument("--param", action="append", default=[], metavar="ID=VALUE",
                        help="Decoder parameter")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=os.getenv("WAVEDECODE_LOG_LEVEL", config.LOG_LEVEL),
        format=config.LOG_FORMAT,
    )

    try:
        mapping = _parse_pairs(args.map, "mapping")
        params = {k: _parse_value(v) for k, v in _parse_pairs(args.param, "parameter").items()}
        capture = load_capture(Path(args.capture), args.rate, args.threshold)
        decoder = decode_capture(args.decoder, capture, mapping, params)
    except (ConfigurationError, OSError) as e:
        logger.error(f"{e}")
        return 2

    for channel in decoder.metadata.output_channels:
        waveform = decoder.get_waveform(channel)
        if waveform is None:
            continue
        for frame in waveform.data:
            label = f"0x{frame.label:02X}" if isinstance(frame.label, int) else frame.label
            print(f"{channel}\t{frame.start:.9f}\t{frame.end:.9f}\t{label}")

    last_error = getattr(decoder, "last_error", None)
    if last_error is not None:
        logger.error(f"Decoding stopped: {last_error}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
