import itertools
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Tuple
from wavedecode.dtos import ChannelSpec, ConfigurationError, ParameterUpdate, Waveform
from wavedecode.stream import StreamMetadata, WaveformStream

logger = logging.getLogger("DecoderStream")

InputWaveforms = Dict[str, Waveform]

_instance_ids = itertools.count(1)


class DecodeInProgressError(RuntimeError):
    pass


@dataclass(frozen=True)
class DecoderMetadata(StreamMetadata):
    """
    Stream metadata plus the decoder's input channels (analog/binary only).
    """
    input_channels: Mapping[str, ChannelSpec] = field(default_factory=dict)

    def __post_init__(self):
        for ch, spec in self.input_channels.items():
            if spec.kind == "frame":
                raise ConfigurationError(f"{self.name}: input {ch!r} cannot take frame waveforms")


@dataclass
class InputBinding:
    """
    One input slot: which source channel feeds it and its latest waveform.
    """
    channel: str
    source: WaveformStream
    source_channel: str
    waveform: Optional[Waveform] = None


class DecoderStream(WaveformStream):
    """
    DecoderStream: a stream whose outputs are computed from other streams.

    Responsibility:
    - Binds each declared input channel to a source stream output.
    - Re-runs decoding when a bound waveform is extended (continue)
      or replaced (from start).
    - Refuses to decode until every input is bound and has data.

    Rules:
    - One decode run at a time per instance. Rebinding mid-run is an error.
    """

    def __init__(self, metadata: DecoderMetadata, parameters: Optional[Mapping[str, Any]] = None):
        super().__init__(metadata, parameters)
        self.instance_id = next(_instance_ids)
        self._bindings: Dict[str, Optional[InputBinding]] = {ch: None for ch in metadata.input_channels}
        self._decoding = False
        self._pending_from_start = False

    def decode(self, inputs: InputWaveforms, from_start: bool) -> None:
        raise NotImplementedError

    def reset_decoder(self) -> None:
        """Discard all decode progress. Overridden by decoders that keep state."""

    # --- Binding surface ---

    def bind_input(self, channel: str, source: WaveformStream, source_channel: Optional[str] = None):
        """
        Bind an input channel to an output channel of `source`.
        If `source_channel` is omitted the source must have exactly one output of the right kind.
        """
        # 1. Validate (no mutation on failure)
        spec = self._input_spec(channel)
        source_channel = self._resolve_source_channel(channel, spec, source, source_channel)

        if self._decoding:
            raise DecodeInProgressError(f"{self.metadata.name}: cannot rebind {channel!r} while decoding")

        # 2. Drop the old binding
        old = self._bindings[channel]
        if old is not None:
            if old.source is source and old.source_channel == source_channel:
                return
            old.source.remove_listener(old.source_channel, self._listener_id(channel))
            logger.info(f"{self.metadata.name}: rebinding input {channel!r}, resetting decode progress")
            self.reset_decoder()

        # 3. Register with the new source
        self._bindings[channel] = InputBinding(
            channel=channel,
            source=source,
            source_channel=source_channel,
            waveform=source.get_waveform(source_channel),
        )
        source.add_listener(source_channel, self._listener_id(channel), self._on_source_waveform)

        if self.is_ready():
            self.run_decoder(from_start=True)

    def unbind_input(self, channel: str):
        self._input_spec(channel)
        if self._decoding:
            raise DecodeInProgressError(f"{self.metadata.name}: cannot unbind {channel!r} while decoding")

        old = self._bindings[channel]
        if old is None:
            return
        old.source.remove_listener(old.source_channel, self._listener_id(channel))
        self._bindings[channel] = None
        self.reset_decoder()

    def get_input_bindings(self) -> Dict[str, Optional[InputBinding]]:
        return dict(self._bindings)

    def is_ready(self) -> bool:
        return all(b is not None for b in self._bindings.values())

    # --- Decoding ---

    def run_decoder(self, from_start: bool = False) -> bool:
        """
        Decode with the current input waveforms.
        Returns False (and does nothing) while inputs are unbound or empty.
        """
        if not self.is_ready():
            logger.debug(f"{self.metadata.name}: inputs not bound, decode unavailable")
            return False

        inputs = {ch: b.waveform for ch, b in self._bindings.items()}
        missing = [ch for ch, w in inputs.items() if w is None]
        if missing:
            logger.debug(f"{self.metadata.name}: no data yet on {missing}")
            return False

        if self._decoding:
            raise DecodeInProgressError(f"{self.metadata.name}: decode already in progress")

        self._decoding = True
        try:
            self.decode(inputs, from_start)
        finally:
            self._decoding = False
        return True

    def try_set_parameter(self, parameter_id: str, value: Any) -> ParameterUpdate:
        update = super().try_set_parameter(parameter_id, value)
        if update.applied:
            # New settings apply to the whole trace
            self.reset_decoder()
            self.run_decoder(from_start=True)
        return update

    def _on_source_waveform(self, listener_id: Tuple[int, str], waveform: Waveform, extended: bool):
        channel = listener_id[1]
        binding = self._bindings.get(channel)
        if binding is None:
            return None
        binding.waveform = waveform
        self._pending_from_start = self._pending_from_start or not extended
        # Decode once, after the source has delivered every channel it emitted
        return self._run_pending

    def _run_pending(self):
        from_start = self._pending_from_start
        self._pending_from_start = False
        self.run_decoder(from_start=from_start)

    # --- Helpers ---

    def _listener_id(self, channel: str) -> Tuple[int, str]:
        return (self.instance_id, channel)

    def _input_spec(self, channel: str) -> ChannelSpec:
        try:
            return self.metadata.input_channels[channel]
        except KeyError:
            raise ConfigurationError(f"{self.metadata.name}: unknown input channel {channel!r}") from None

    def _resolve_source_channel(self, channel, spec, source, source_channel) -> str:
        outputs = source.metadata.output_channels
        if source_channel is None:
            candidates = [ch for ch, s in outputs.items() if s.kind == spec.kind]
            if len(candidates) != 1:
                raise ConfigurationError(
                    f"{self.metadata.name}: source {source.metadata.name!r} has "
                    f"{len(candidates)} {spec.kind} outputs, name one for input {channel!r}"
                )
            return candidates[0]

        if source_channel not in outputs:
            raise ConfigurationError(
                f"{self.metadata.name}: source {source.metadata.name!r} has no output {source_channel!r}"
            )
        if outputs[source_channel].kind != spec.kind:
            raise ConfigurationError(
                f"{self.metadata.name}: input {channel!r} takes {spec.kind}, "
                f"{source.metadata.name}.{source_channel} is {outputs[source_channel].kind}"
            )
        return source_channel
