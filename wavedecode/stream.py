import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Hashable, Mapping, Optional
from wavedecode.dtos import ChannelSpec, ConfigurationError, FrameWaveform, ParameterUpdate, Waveform
from wavedecode.parameters import Parameter, default_values
from wavedecode.components.sample_buffer import SampleBuffer
from wavedecode.infrastructure.listener_registry import ListenerRegistry

logger = logging.getLogger("WaveformStream")

ChannelCallback = Callable[[Waveform], None]


@dataclass(frozen=True)
class StreamMetadata:
    """
    Static description of a stream, given at registration.
    """
    name: str
    parameters: Mapping[str, Parameter] = field(default_factory=dict)
    output_channels: Mapping[str, ChannelSpec] = field(default_factory=dict)


class WaveformStream:
    """
    WaveformStream: base class for every producer of waveforms.

    Responsibility:
    - Declared output channels, one optional consumer callback each.
    - Materializes emitted analog/binary data per channel (append or replace).
    - Notifies dependent decoders through a ListenerRegistry, once per emission.
    - Parameter state; changes go through an overridable (possibly I/O) hook.
    """

    def __init__(self, metadata: StreamMetadata, parameters: Optional[Mapping[str, Any]] = None):
        self.metadata = metadata

        values = default_values(metadata.parameters)
        for pid, value in (parameters or {}).items():
            self._parameter_spec(pid).check(value)
            values[pid] = value
        self._parameter_values: Dict[str, Any] = values

        self._callbacks: Dict[str, ChannelCallback] = {}
        self._listeners = ListenerRegistry()

        # Latest materialized waveform per output channel
        self._buffers: Dict[str, SampleBuffer] = {}
        self._frames: Dict[str, Optional[FrameWaveform]] = {}
        for ch, spec in metadata.output_channels.items():
            if spec.kind == "frame":
                self._frames[ch] = None
            else:
                self._buffers[ch] = SampleBuffer(spec.kind)

    def start(self):
        """Begin producing data. Called once callbacks are in place."""

    def set_output_callback(self, channel: str, callback: ChannelCallback):
        self._output_spec(channel)
        self._callbacks[channel] = callback

    def on_waveform_ready(self, data: Mapping[str, Waveform], append: bool = False):
        """
        Emit waveforms for some (or all) output channels.

        append=True extends the channel's materialized samples,
        append=False replaces them.
        """
        # 1. Validate everything before any mutation
        for ch, waveform in data.items():
            spec = self._output_spec(ch)
            if getattr(waveform, "kind", None) != spec.kind:
                raise ConfigurationError(
                    f"{self.metadata.name}: channel {ch!r} emits {spec.kind}, "
                    f"got {getattr(waveform, 'kind', type(waveform).__name__)}"
                )

        # 2. Materialize
        for ch, waveform in data.items():
            if ch in self._buffers:
                if append:
                    self._buffers[ch].push(waveform)
                else:
                    self._buffers[ch].replace(waveform)
            else:
                previous = self._frames[ch]
                if append and previous is not None:
                    waveform = FrameWaveform(previous.data + waveform.data)
                self._frames[ch] = waveform

        # 3. Consumers, then dependents
        for ch, waveform in data.items():
            callback = self._callbacks.get(ch)
            if callback:
                callback(waveform)

        # Dependents see every channel of this emission before they decode
        self._listeners.publish_batch({ch: (self.get_waveform(ch), append) for ch in data})

    def get_waveform(self, channel: str) -> Optional[Waveform]:
        """Current materialized waveform of an output channel (None before first emission)."""
        self._output_spec(channel)
        if channel in self._buffers:
            return self._buffers[channel].snapshot()
        return self._frames[channel]

    # --- Listener surface (used by DecoderStream.bind_input) ---

    def add_listener(self, channel: str, listener_id: Hashable, callback: Callable):
        self._output_spec(channel)
        self._listeners.subscribe(channel, listener_id, callback)

    def remove_listener(self, channel: str, listener_id: Hashable) -> bool:
        return self._listeners.unsubscribe(channel, listener_id)

    def get_listeners(self, channel: str) -> list:
        return self._listeners.listeners(channel)

    # --- Parameters ---

    def get_parameter(self, parameter_id: str) -> Any:
        self._parameter_spec(parameter_id)
        return self._parameter_values[parameter_id]

    def get_parameter_values(self) -> Dict[str, Any]:
        return dict(self._parameter_values)

    def try_set_parameter(self, parameter_id: str, value: Any) -> ParameterUpdate:
        """
        Request a parameter change.
        Invalid ids/values raise; a failing hook keeps the previous value
        and is reported in the returned ParameterUpdate.
        """
        self._parameter_spec(parameter_id).check(value)
        previous = self._parameter_values[parameter_id]

        try:
            self.on_set_parameter(parameter_id, value)
        except Exception as e:
            logger.warning(f"{self.metadata.name}: setting {parameter_id}={value!r} failed: {e}")
            return ParameterUpdate(parameter_id, applied=False, value=previous, error=e)

        self._parameter_values[parameter_id] = value
        logger.debug(f"{self.metadata.name}: {parameter_id} {previous!r} -> {value!r}")
        return ParameterUpdate(parameter_id, applied=True, value=value)

    def on_set_parameter(self, parameter_id: str, value: Any) -> None:
        """
        Apply a parameter change outside the stream (device I/O etc).
        Raise to reject it. Default: accept.
        """

    # --- Helpers ---

    def _output_spec(self, channel: str) -> ChannelSpec:
        try:
            return self.metadata.output_channels[channel]
        except KeyError:
            raise ConfigurationError(f"{self.metadata.name}: unknown output channel {channel!r}") from None

    def _parameter_spec(self, parameter_id: str) -> Parameter:
        try:
            return self.metadata.parameters[parameter_id]
        except KeyError:
            raise ConfigurationError(f"{self.metadata.name}: unknown parameter {parameter_id!r}") from None
