import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Literal

from wavedecode.stream import StreamMetadata, WaveformStream

logger = logging.getLogger("StreamRegistry")

StreamCategory = Literal["Simulated", "Decoder", "Serial Device", "Network Device", "Other"]
CATEGORIES = ("Simulated", "Decoder", "Serial Device", "Network Device", "Other")


@dataclass(frozen=True)
class StreamEntry:
    metadata: StreamMetadata
    factory: Callable[..., WaveformStream]  # factory(parameters) -> stream


_streams: Dict[str, List[StreamEntry]] = {}


def register_stream(category: StreamCategory, metadata: StreamMetadata, factory: Callable[..., WaveformStream]):
    """
    Make a stream implementation available at runtime.
    A second registration of the same name in a category is ignored.
    """
    if category not in CATEGORIES:
        raise ValueError(f"Unknown stream category: {category!r}")

    entries = _streams.setdefault(category, [])
    if any(e.metadata.name == metadata.name for e in entries):
        logger.warning(f"Stream '{metadata.name}' already registered under {category}")
        return
    entries.append(StreamEntry(metadata, factory))
    logger.info(f"Registered {category} stream: {metadata.name}")


def get_stream_list() -> Dict[str, List[StreamEntry]]:
    return {category: list(entries) for category, entries in _streams.items()}


def find_stream(category: StreamCategory, name: str) -> StreamEntry:
    for entry in _streams.get(category, []):
        if entry.metadata.name == name:
            return entry
    raise KeyError(f"No {category} stream named {name!r}")
