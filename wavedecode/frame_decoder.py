import inspect
import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, Generator, List, Literal, Mapping, Optional, Set, Tuple, Union
from wavedecode.dtos import ConfigurationError, FrameLabel, FrameRecord, FrameWaveform
from wavedecode.decoder import DecoderMetadata, DecoderStream, InputWaveforms
from wavedecode.components.scheduler import ChannelScheduler
from wavedecode.components.trigger import Condition, parse_trigger_sets
from wavedecode import config

logger = logging.getLogger("FrameDecoder")

InputSamples = Dict[str, Union[int, float]]
TriggerResult = Tuple[str, InputSamples]


class FrameError(RuntimeError):
    pass


class NoInputAssignedError(RuntimeError):
    def __init__(self):
        super().__init__("No input assigned")


@dataclass
class WaitTime:
    """Request yielded by a decoder body: advance the cursor by `seconds`."""
    seconds: float
    target: Optional[float] = None  # absolute time, fixed on first attempt


@dataclass
class TriggerState:
    """
    Progress of one wait_trigger call.
    tracker[set][channel] is the condition's value at that channel's latest examined sample.
    """
    tracker: Dict[str, Dict[str, bool]]
    next_index: Dict[str, int]
    matched: Optional[str] = None
    matched_time: Optional[float] = None


@dataclass
class WaitTrigger:
    """Request yielded by a decoder body: wait until one trigger set is satisfied."""
    trigger_sets: Dict[str, Dict[str, Condition]]
    state: Optional[TriggerState] = None


WaitRequest = Union[WaitTime, WaitTrigger]


@dataclass
class Suspension:
    """The single pending wait of a decoder, replayed when new data arrives."""
    kind: Literal["time", "trigger"]
    request: WaitRequest
    target_time: Optional[float] = None
    trigger_state: Optional[TriggerState] = None


@dataclass
class _OpenFrame:
    start: float
    label: Optional[FrameLabel] = None


class FrameDecoderStream(DecoderStream):
    """
    FrameDecoderStream: runs a sequential decoder body over incrementally arriving samples.

    Responsibility:
    - Time cursor shared by all inputs (seconds, never decreases within a run).
    - wait_time / wait_trigger requests yielded by the body generator.
    - Suspends when any needed sample is missing, resumes on the next decode call.
    - Frame assembly on frame-kind outputs, flushed at every suspension.

    Rules:
    - At most one suspension record exists at a time.
    - A body exception resets everything (no half-decoded state survives).

    A body is a generator method:

        def frame_decode(self):
            while True:
                name, samples = yield self.wait_trigger({"start": {"rx": "falling"}})
                self.start_frame("bytes", "START")
                samples = yield self.wait_time(1 / baud)
                self.end_frame("bytes")
    """

    def __init__(self, metadata: DecoderMetadata, parameters: Optional[Mapping[str, Any]] = None):
        for ch, spec in metadata.output_channels.items():
            if spec.kind != "frame":
                raise ConfigurationError(f"{metadata.name}: frame decoder output {ch!r} must be a frame channel")
        super().__init__(metadata, parameters)

        self._input_kinds = {ch: spec.kind for ch, spec in metadata.input_channels.items()}
        self._delivered: Set[str] = set()
        self.last_error: Optional[BaseException] = None
        self._clear_state()

    def frame_decode(self) -> Generator[WaitRequest, Any, None]:
        raise NotImplementedError

    # --- Read-only state ---

    @property
    def current_time(self) -> float:
        return self._cursor

    @property
    def suspension(self) -> Optional[Suspension]:
        return self._suspension

    # --- Waiting primitives (yield the returned request) ---

    def wait_time(self, seconds: float) -> WaitTime:
        """
        Advance the cursor by `seconds`. Resolves to one sample per input:
        the sample at floor(t * rate), i.e. the last known sample for
        channels without a sample exactly at t.
        """
        if not seconds > 0:
            raise ValueError(f"wait_time needs a positive delay, got {seconds}")
        return WaitTime(float(seconds))

    def wait_trigger(self, trigger_sets: Mapping[str, Mapping[str, Any]]) -> WaitTrigger:
        """
        Wait for any one of several named trigger sets {name: {channel: condition}}.
        Resolves to (name, samples at the satisfying sample's time).
        """
        return WaitTrigger(parse_trigger_sets(trigger_sets, self._input_kinds))

    # --- Frame assembly ---

    def start_frame(self, channel: str, label: Optional[FrameLabel] = None):
        self._output_spec(channel)
        if channel in self._open_frames:
            raise FrameError(f"Frame already started on {channel!r}")
        self._open_frames[channel] = _OpenFrame(self._cursor, label)

    def end_frame(self, channel: str, label: Optional[FrameLabel] = None) -> FrameRecord:
        self._output_spec(channel)
        frame = self._open_frames.get(channel)
        if frame is None:
            raise FrameError(f"Frame not started on {channel!r}")
        if label is None:
            label = frame.label
        if label is None:
            raise FrameError(f"Frame on {channel!r} has no label")

        record = FrameRecord(frame.start, self._cursor, label)
        frames = self._output[channel]
        if frames and record.start < frames[-1].end:
            raise FrameError(f"Frame {record} overlaps previous frame {frames[-1]} on {channel!r}")

        del self._open_frames[channel]
        frames.append(record)
        return record

    def discard_frame(self, channel: str):
        self._output_spec(channel)
        if self._open_frames.pop(channel, None) is None:
            raise FrameError(f"Frame not started on {channel!r}")

    # --- Engine ---

    def decode(self, inputs: InputWaveforms, from_start: bool) -> None:
        if from_start:
            self.reset()
        self._inputs = inputs

        # A pending wait is resolved before any more body code runs
        if self._suspension is not None:
            suspension = self._suspension
            self._suspension = None
            logger.debug(f"{self.metadata.name}: resuming {suspension.kind} wait at t={self._cursor:.9f}s")
            try:
                result = self._resolve(suspension.request)
            except Exception as e:
                self._fail(e)
                return
            if result is None:
                self._suspend(suspension.request)
                return
            self._run_body(result)
            return

        if self._body is None:
            body = self.frame_decode()
            if not inspect.isgenerator(body):
                raise TypeError(f"{type(self).__name__}.frame_decode must be a generator")
            self._body = body
        self._run_body(None)

    def reset(self):
        """
        Discard cursor, inputs, open frames, sealed frames and any pending wait.
        Channels that had delivered frames receive an empty frame waveform.
        """
        if self._suspension is not None:
            logger.debug(f"{self.metadata.name}: discarding pending {self._suspension.kind} wait")
        if self._body is not None:
            self._body.close()

        cleared = self._delivered
        self._delivered = set()
        self._clear_state()

        if cleared:
            self.on_waveform_ready({ch: FrameWaveform() for ch in cleared})

    def reset_decoder(self) -> None:
        self.reset()

    def _clear_state(self):
        self._cursor = 0.0
        self._inputs: Optional[InputWaveforms] = None
        self._suspension: Optional[Suspension] = None
        self._body: Optional[Generator] = None
        self._open_frames: Dict[str, _OpenFrame] = {}
        self._output: Dict[str, List[FrameRecord]] = {ch: [] for ch in self.metadata.output_channels}
        # Next sample index per input that no trigger wait has examined yet
        self._examined: Dict[str, int] = {ch: 0 for ch in self._input_kinds}

    def _run_body(self, value: Any):
        try:
            while True:
                request = self._body.send(value)
                result = self._resolve(request)
                if result is None:
                    self._suspend(request)
                    return
                value = result
        except StopIteration:
            logger.debug(f"{self.metadata.name}: decoder body finished at t={self._cursor:.9f}s")
            self._body = None
            self._flush()
        except Exception as e:
            self._fail(e)

    def _fail(self, error: Exception):
        self.last_error = error
        logger.error(
            f"{self.metadata.name}: decode failed at t={self._cursor:.9f}s, resetting: {error!r}",
            exc_info=error,
        )
        self.reset()

    def _suspend(self, request: WaitRequest):
        if isinstance(request, WaitTime):
            self._suspension = Suspension("time", request, target_time=request.target)
        else:
            self._suspension = Suspension("trigger", request, trigger_state=request.state)
        logger.debug(f"{self.metadata.name}: suspended on {self._suspension.kind} wait at t={self._cursor:.9f}s")
        self._flush()

    def _flush(self):
        ready = {ch: FrameWaveform(tuple(frames)) for ch, frames in self._output.items() if frames}
        if ready:
            self._delivered.update(ready)
            self.on_waveform_ready(ready)

    # --- Wait resolution (None = not enough data yet) ---

    def _resolve(self, request: WaitRequest):
        if self._inputs is None:
            raise NoInputAssignedError()
        if isinstance(request, WaitTime):
            return self._resolve_time(request)
        if isinstance(request, WaitTrigger):
            return self._resolve_trigger(request)
        raise TypeError(f"Decoder body yielded {request!r}; yield self.wait_time(...) or self.wait_trigger(...)")

    def _resolve_time(self, request: WaitTime) -> Optional[InputSamples]:
        if request.target is None:
            request.target = self._cursor + request.seconds

        samples = self._samples_at(request.target)
        if samples is None:
            return None
        self._cursor = request.target
        return samples

    def _resolve_trigger(self, request: WaitTrigger) -> Optional[TriggerResult]:
        sets = request.trigger_sets
        state = request.state

        if state is None:
            # Only channels that appear in some condition are scheduled
            channels = [ch for ch in self._inputs if any(ch in conds for conds in sets.values())]
            next_index = {}
            for ch in channels:
                rate = self._inputs[ch].sample_rate
                first = math.ceil(self._cursor * rate - config.SAMPLE_EPSILON)
                next_index[ch] = max(first, self._examined[ch])
            tracker = {name: {ch: False for ch in conds} for name, conds in sets.items()}
            state = request.state = TriggerState(tracker, next_index)

        if state.matched is None:
            rates = {ch: self._inputs[ch].sample_rate for ch in state.next_index}
            scheduler = ChannelScheduler(rates, state.next_index)

            while True:
                ch, index, sample_time = scheduler.pop()
                data = self._inputs[ch].data

                # Out of data on the earliest channel: wait for more
                if index >= len(data):
                    return None

                value = data[index].item()
                prev = data[index - 1].item() if index > 0 else value
                for name, conds in sets.items():
                    if ch in conds:
                        state.tracker[name][ch] = conds[ch].check(prev, value)
                state.next_index[ch] = index + 1

                matched = next((name for name, fired in state.tracker.items() if all(fired.values())), None)
                if matched is not None:
                    state.matched = matched
                    state.matched_time = sample_time
                    break
                scheduler.push(ch, index + 1)

        samples = self._samples_at(state.matched_time)
        if samples is None:
            return None

        self._cursor = max(self._cursor, state.matched_time)
        self._examined.update(state.next_index)
        return state.matched, samples

    def _samples_at(self, t: float) -> Optional[InputSamples]:
        samples = {}
        for ch, waveform in self._inputs.items():
            index = int(math.floor(t * waveform.sample_rate + config.SAMPLE_EPSILON))
            if index >= len(waveform.data):
                return None
            samples[ch] = waveform.data[index].item()
        return samples
