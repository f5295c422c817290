"""Microphone capture and audio playback, owned 1:1 by a session.

The default devices use ``sounddevice``::

    pip install canvaskit[local-audio]
"""

from __future__ import annotations

import asyncio
import contextlib
import fractions
import logging
import threading
from abc import ABC, abstractmethod
from collections import deque
from collections.abc import Callable
from typing import Any

import av
import numpy as np
from aiortc import MediaStreamTrack
from aiortc.mediastreams import MediaStreamError

from canvaskit.errors import AcquisitionError, PlaybackBlockedError

logger = logging.getLogger("canvaskit.realtime.media")

MediaChangeCallback = Callable[[], Any]


class MicrophoneCapture(ABC):
    """Source of mono PCM16 audio blocks."""

    sample_rate: int = 48000

    @abstractmethod
    async def start(self) -> None:
        """Open the device. Raises on permission or hardware failure."""
        ...

    @abstractmethod
    async def read(self) -> bytes:
        """Next captured block of little-endian int16 samples."""
        ...

    @abstractmethod
    async def stop(self) -> None: ...


class PlaybackSink(ABC):
    """Destination for the agent's audio."""

    sample_rate: int = 24000

    @abstractmethod
    async def start(self) -> None:
        """Start playing.

        Raises:
            PlaybackBlockedError: The runtime refused to start playback.
        """
        ...

    @abstractmethod
    def write(self, pcm: bytes) -> None:
        """Queue mono PCM16 audio."""
        ...

    @abstractmethod
    async def close(self) -> None: ...


class MicrophoneTrack(MediaStreamTrack):
    """Outbound WebRTC audio track fed by a :class:`MicrophoneCapture`."""

    kind = "audio"

    def __init__(self, capture: MicrophoneCapture) -> None:
        super().__init__()
        self._capture = capture
        self._pts = 0

    async def recv(self) -> av.AudioFrame:
        if self.readyState != "live":
            raise MediaStreamError
        data = await self._capture.read()
        samples = np.frombuffer(data, dtype=np.int16).reshape(1, -1)
        frame = av.AudioFrame.from_ndarray(samples, format="s16", layout="mono")
        frame.sample_rate = self._capture.sample_rate
        frame.pts = self._pts
        frame.time_base = fractions.Fraction(1, self._capture.sample_rate)
        self._pts += samples.shape[1]
        return frame


class MediaResources:
    """Acquires and releases the audio devices of one session.

    :meth:`release` stops every track, closes the sink and drops all
    references exactly once; later calls are no-ops.

    Args:
        microphone: Capture device. Defaults to :class:`SoundDeviceMicrophone`.
        playback: Playback device. Defaults to :class:`SoundDevicePlayback`.
        autoplay: Try to start playback once when the remote track arrives.
    """

    def __init__(
        self,
        microphone: MicrophoneCapture | None = None,
        playback: PlaybackSink | None = None,
        *,
        autoplay: bool = True,
    ) -> None:
        self._microphone = microphone
        self._playback = playback
        self._autoplay = autoplay
        self._local_track: MicrophoneTrack | None = None
        self._remote_track: MediaStreamTrack | None = None
        self._pump_task: asyncio.Task[None] | None = None
        self._play_task: asyncio.Task[bool] | None = None
        self._resampler: av.AudioResampler | None = None
        self._microphone_active = False
        self._playing = False
        self._playback_blocked = False
        self._released = False
        self._callbacks: list[MediaChangeCallback] = []

    @property
    def microphone_active(self) -> bool:
        return self._microphone_active

    @property
    def playing(self) -> bool:
        return self._playing

    @property
    def playback_blocked(self) -> bool:
        return self._playback_blocked

    @property
    def released(self) -> bool:
        return self._released

    @property
    def local_track(self) -> MicrophoneTrack | None:
        return self._local_track

    def on_change(self, callback: MediaChangeCallback) -> None:
        """Register a callback fired when a media status flag changes."""
        self._callbacks.append(callback)

    async def acquire(self) -> MicrophoneTrack:
        """Open the microphone and build the playback sink.

        Raises:
            AcquisitionError: The microphone could not be opened.
        """
        if self._released:
            raise AcquisitionError("Media resources were already released")
        if self._local_track is not None:
            return self._local_track
        microphone = self._microphone or SoundDeviceMicrophone()
        self._microphone = microphone
        try:
            await microphone.start()
        except AcquisitionError:
            raise
        except Exception as exc:
            raise AcquisitionError(f"Microphone unavailable: {exc}") from exc
        if self._playback is None:
            self._playback = SoundDevicePlayback()
        self._local_track = MicrophoneTrack(microphone)
        self._microphone_active = True
        self._notify()
        logger.info("Microphone acquired (%d Hz)", microphone.sample_rate)
        return self._local_track

    def attach_remote_track(self, track: MediaStreamTrack) -> None:
        """Route the agent's inbound audio track to the playback sink."""
        if self._released or self._playback is None:
            logger.warning("Remote track ignored, media resources not acquired")
            return
        self._remote_track = track
        self._resampler = av.AudioResampler(
            format="s16", layout="mono", rate=self._playback.sample_rate
        )
        loop = asyncio.get_running_loop()
        self._pump_task = loop.create_task(self._pump(track), name="media:remote_audio")
        if self._autoplay:
            self._play_task = loop.create_task(self._try_play(), name="media:autoplay")

    async def enable_playback(self) -> bool:
        """Single explicit attempt to start playback (e.g. after a user gesture)."""
        if self._released:
            return False
        if self._playing:
            return True
        return await self._try_play()

    async def _try_play(self) -> bool:
        if self._playback is None or self._released:
            return False
        try:
            await self._playback.start()
        except PlaybackBlockedError as exc:
            logger.warning("Playback blocked: %s", exc)
            self._playback_blocked = True
            self._notify()
            return False
        self._playing = True
        self._playback_blocked = False
        self._notify()
        return True

    async def _pump(self, track: MediaStreamTrack) -> None:
        while True:
            try:
                frame = await track.recv()
            except MediaStreamError:
                logger.debug("Remote audio track ended")
                return
            if not self._playing or self._playback is None or self._resampler is None:
                continue
            for out in self._resampler.resample(frame):
                self._playback.write(out.to_ndarray().astype(np.int16).tobytes())

    async def release(self) -> None:
        """Stop tracks, close devices and clear references. Runs once."""
        if self._released:
            return
        self._released = True

        if self._pump_task is not None:
            self._pump_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._pump_task
        if self._play_task is not None and not self._play_task.done():
            self._play_task.cancel()
        for track in (self._local_track, self._remote_track):
            if track is not None:
                track.stop()
        if self._microphone is not None and self._microphone_active:
            try:
                await self._microphone.stop()
            except Exception:
                logger.exception("Error stopping microphone")
        if self._playback is not None:
            try:
                await self._playback.close()
            except Exception:
                logger.exception("Error closing playback sink")

        self._pump_task = None
        self._play_task = None
        self._local_track = None
        self._remote_track = None
        self._resampler = None
        self._microphone = None
        self._playback = None
        self._microphone_active = False
        self._playing = False
        self._playback_blocked = False
        self._notify()
        logger.info("Media resources released")

    def _notify(self) -> None:
        for cb in self._callbacks:
            try:
                cb()
            except Exception:
                logger.exception("Error in media change callback")


class SoundDeviceMicrophone(MicrophoneCapture):
    """System microphone via a ``sounddevice.RawInputStream``.

    The PortAudio callback runs in its own thread and hands every block to
    the event loop with ``call_soon_threadsafe``.
    """

    def __init__(
        self,
        *,
        sample_rate: int = 48000,
        block_duration_ms: int = 20,
        device: int | str | None = None,
    ) -> None:
        self.sample_rate = sample_rate
        self._block_duration_ms = block_duration_ms
        self._device = device
        self._stream: Any = None
        self._queue: asyncio.Queue[bytes] = asyncio.Queue(maxsize=50)
        self._loop: asyncio.AbstractEventLoop | None = None

    async def start(self) -> None:
        sd = _import_sounddevice()
        self._loop = asyncio.get_running_loop()
        blocksize = int(self.sample_rate * self._block_duration_ms / 1000)

        def _mic_callback(indata: bytes, frames: int, time_info: Any, status: Any) -> None:
            if status:
                logger.warning("Mic status: %s", status)
            if self._loop is not None and self._loop.is_running():
                self._loop.call_soon_threadsafe(self._enqueue, bytes(indata))

        stream = sd.RawInputStream(
            samplerate=self.sample_rate,
            blocksize=blocksize,
            channels=1,
            dtype="int16",
            device=self._device,
            callback=_mic_callback,
        )
        stream.start()
        self._stream = stream

    def _enqueue(self, data: bytes) -> None:
        if self._queue.full():
            self._queue.get_nowait()
        self._queue.put_nowait(data)

    async def read(self) -> bytes:
        return await self._queue.get()

    async def stop(self) -> None:
        stream, self._stream = self._stream, None
        if stream is not None:
            stream.stop()
            stream.close()


class SoundDevicePlayback(PlaybackSink):
    """System speakers via a callback-driven ``sounddevice.RawOutputStream``.

    PortAudio pulls samples at the hardware rate; gaps are filled with
    silence.
    """

    def __init__(self, *, sample_rate: int = 24000, device: int | str | None = None) -> None:
        self.sample_rate = sample_rate
        self._device = device
        self._stream: Any = None
        self._buffer: deque[bytes] = deque()
        self._buffer_lock = threading.Lock()
        self._offset = 0

    async def start(self) -> None:
        if self._stream is not None:
            return
        sd = _import_sounddevice()
        try:
            stream = sd.RawOutputStream(
                samplerate=self.sample_rate,
                channels=1,
                dtype="int16",
                device=self._device,
                callback=self._speaker_callback,
            )
            stream.start()
        except sd.PortAudioError as exc:
            raise PlaybackBlockedError(f"Output device refused to start: {exc}") from exc
        self._stream = stream

    def write(self, pcm: bytes) -> None:
        if len(pcm) < 2:
            return
        with self._buffer_lock:
            self._buffer.append(pcm)

    def _speaker_callback(self, outdata: Any, frames: int, time_info: Any, status: Any) -> None:
        bytes_needed = frames * 2
        written = 0
        with self._buffer_lock:
            buf = self._buffer
            while written < bytes_needed and buf:
                chunk = buf[0]
                n = min(len(chunk) - self._offset, bytes_needed - written)
                outdata[written : written + n] = chunk[self._offset : self._offset + n]
                written += n
                self._offset += n
                if self._offset >= len(chunk):
                    buf.popleft()
                    self._offset = 0
        if written < bytes_needed:
            outdata[written:] = b"\x00" * (bytes_needed - written)

    async def close(self) -> None:
        with self._buffer_lock:
            self._buffer.clear()
            self._offset = 0
        stream, self._stream = self._stream, None
        if stream is not None:
            stream.abort()
            stream.close()


def _import_sounddevice() -> Any:
    """Import sounddevice, raising a clear error if missing."""
    try:
        import sounddevice as _sd

        return _sd
    except ImportError as exc:
        raise ImportError(
            "sounddevice is required for the default audio devices. "
            "Install it with: pip install canvaskit[local-audio]"
        ) from exc
