"""Game audio: samples, panning, volume ramps and a stereo mixer.

Audio runs at 48 kHz. The :class:`Mixer` produces blocks of
:data:`MIX_SAMPLES` stereo frames; its lock guards state shared with the
thread that pulls audio from it.
"""

from __future__ import annotations

import math
import threading
from typing import Generic, Optional, Sequence, TypeVar

import numpy as np

from standhigh.vecmath import normalize
from standhigh.wav import load_wav

AUDIO_RATE = 48000
MIX_SAMPLES = 1024
RAMP_STEP = MIX_SAMPLES / AUDIO_RATE
DEFAULT_RAMP = 1.0 / 60.0

_PI = 3.1415926

T = TypeVar("T")


def _copy(value):
    return value.copy() if isinstance(value, np.ndarray) else value


def _vec3(values: Sequence[float]) -> np.ndarray:
    return np.array(values, dtype=float).reshape(3)


class Ramp(Generic[T]):
    """A value that moves smoothly towards a target over ``ramp`` seconds."""

    def __init__(self, value: T) -> None:
        self.value: T = value
        self.target: T = _copy(value)
        self.ramp: float = 0.0

    def set(self, value: T, ramp: float) -> None:
        """Set a new target; a ramp of zero or less jumps there at once."""
        if ramp <= 0.0:
            self.value = _copy(value)
            self.target = _copy(value)
            self.ramp = 0.0
        else:
            self.target = _copy(value)
            self.ramp = ramp

    def __repr__(self) -> str:
        return f"Ramp(value={self.value!r}, target={self.target!r}, ramp={self.ramp!r})"


class Sample:
    """Mono 48 kHz floating-point audio."""

    def __init__(self, data: Sequence[float]) -> None:
        self.data = np.asarray(data, dtype=np.float32)

    @classmethod
    def from_file(cls, filename: str) -> "Sample":
        """Load a sample from a ``.wav`` file."""
        if filename.endswith(".wav"):
            return cls(load_wav(filename))
        raise ValueError(
            f"Sample '{filename}' doesn't end in \".wav\" -- unsure how to load."
        )


class PlayingSample:
    """Book-keeping for a sample that is being played.

    Played in "2D" mode (with ``pan``) or "3D" mode (with ``position``);
    the unused controls hold NaN.
    """

    def __init__(
        self,
        sample: Sample,
        volume: float = 1.0,
        pan: float = 0.0,
        *,
        position: Optional[Sequence[float]] = None,
        half_volume_radius: float = math.inf,
        loop: bool = False,
        lock=None,
    ) -> None:
        self.data = sample.data
        self.i = 0
        self.loop = loop
        self.stopping = False
        self.stopped = False
        self.volume: Ramp[float] = Ramp(float(volume))
        if position is None:
            self.pan: Ramp[float] = Ramp(float(pan))
            self.position: Ramp[np.ndarray] = Ramp(np.full(3, math.nan))
            self.half_volume_radius: Ramp[float] = Ramp(math.nan)
        else:
            self.pan = Ramp(math.nan)
            self.position = Ramp(_vec3(position))
            self.half_volume_radius = Ramp(float(half_volume_radius))
        self._lock = lock if lock is not None else threading.RLock()

    @property
    def is_3d(self) -> bool:
        return math.isnan(self.pan.value)

    def set_volume(self, new_volume: float, ramp: float = DEFAULT_RAMP) -> None:
        """Change the volume over ``ramp`` seconds (ignored once stopping)."""
        with self._lock:
            if not self.stopping:
                self.volume.set(float(new_volume), ramp)

    def set_pan(self, new_pan: float, ramp: float = DEFAULT_RAMP) -> None:
        """Change the panning of a 2D sample; no effect on 3D samples."""
        if self.is_3d:
            return
        with self._lock:
            self.pan.set(float(new_pan), ramp)

    def set_position(self, new_position: Sequence[float], ramp: float = DEFAULT_RAMP) -> None:
        """Move a 3D sample; no effect on 2D samples."""
        if not self.is_3d:
            return
        with self._lock:
            self.position.set(_vec3(new_position), ramp)

    def set_half_volume_radius(self, new_radius: float, ramp: float = DEFAULT_RAMP) -> None:
        """Change the half-volume radius of a 3D sample; no effect on 2D samples."""
        if not self.is_3d:
            return
        with self._lock:
            self.half_volume_radius.set(float(new_radius), ramp)

    def stop(self, ramp: float = DEFAULT_RAMP) -> None:
        """Fade out over ``ramp`` seconds, after which the mixer drops the sample."""
        with self._lock:
            if not (self.stopping or self.stopped):
                self.stopping = True
                self.volume.target = 0.0
                self.volume.ramp = ramp
            else:
                self.volume.ramp = min(self.volume.ramp, ramp)


class Listener:
    """Position and right-hand direction used to pan 3D samples."""

    def __init__(self, lock=None) -> None:
        self.position: Ramp[np.ndarray] = Ramp(np.zeros(3))
        self.right: Ramp[np.ndarray] = Ramp(np.array([1.0, 0.0, 0.0]))
        self._lock = lock if lock is not None else threading.RLock()

    def set_position_right(
        self,
        new_position: Sequence[float],
        new_right: Sequence[float],
        ramp: float = DEFAULT_RAMP,
    ) -> None:
        """Move the listener; ``new_right`` is normalized (zero becomes +x)."""
        right = _vec3(new_right)
        with self._lock:
            self.position.set(_vec3(new_position), ramp)
            if not right.any():
                self.right.set(np.array([1.0, 0.0, 0.0]), ramp)
            else:
                self.right.set(normalize(right), ramp)


def compute_pan_weights(pan: float) -> tuple[float, float]:
    """Return equal-power (left, right) weights for ``pan`` in [-1, 1]."""
    pan = max(-1.0, min(1.0, pan))
    ang = 0.5 * _PI * (0.5 * (pan + 1.0))
    return math.cos(ang), math.sin(ang)


def compute_pan_from_listener_and_position(
    listener_position: Sequence[float],
    listener_right: Sequence[float],
    source_position: Sequence[float],
    source_half_radius: float,
) -> tuple[float, float]:
    """Return (left, right) weights for a source heard by the listener.

    Direction sets the balance; volume halves at ``source_half_radius``.
    """
    to = _vec3(source_position) - _vec3(listener_position)
    distance = float(np.linalg.norm(to))
    if distance == 0.0:
        both = math.sqrt(2.0)
        return both, both
    amt = float(np.dot(_vec3(listener_right), to)) / distance
    ang = 0.5 * _PI * (0.5 * (amt + 1.0))
    att = 1.0 / (1.0 + (distance / source_half_radius))
    return math.cos(ang) * att, math.sin(ang) * att


def step_value_ramp(ramp: Ramp) -> None:
    """Advance a scalar ramp by one mix period."""
    if ramp.ramp < RAMP_STEP:
        ramp.value = ramp.target
        ramp.ramp = 0.0
    else:
        ramp.value += (RAMP_STEP / ramp.ramp) * (ramp.target - ramp.value)
        ramp.ramp -= RAMP_STEP


def step_position_ramp(ramp: Ramp) -> None:
    """Advance a position ramp by one mix period (linear interpolation)."""
    if ramp.ramp < RAMP_STEP:
        ramp.value = ramp.target.copy()
        ramp.ramp = 0.0
    else:
        amt = RAMP_STEP / ramp.ramp
        ramp.value = ramp.value + (ramp.target - ramp.value) * amt
        ramp.ramp -= RAMP_STEP


def step_direction_ramp(ramp: Ramp) -> None:
    """Advance a unit-direction ramp by one mix period, rotating towards the target."""
    if ramp.ramp < RAMP_STEP:
        ramp.value = ramp.target.copy()
        ramp.ramp = 0.0
        return

    target = ramp.target
    norm = np.cross(ramp.value, target)
    if not norm.any():
        if target[0] <= target[1] and target[0] <= target[2]:
            norm = np.array([1.0, 0.0, 0.0])
        elif target[1] <= target[2]:
            norm = np.array([0.0, 1.0, 0.0])
        else:
            norm = np.array([0.0, 0.0, 1.0])
        norm = norm - target * float(np.dot(target, norm))
    norm = normalize(norm)
    perp = np.cross(norm, target)

    angle = math.acos(max(-1.0, min(1.0, float(np.dot(ramp.value, target)))))
    angle *= (ramp.ramp - RAMP_STEP) / ramp.ramp

    ramp.value = target * math.cos(angle) + perp * math.sin(angle)
    ramp.ramp -= RAMP_STEP


class Mixer:
    """Mixes all playing samples into stereo blocks."""

    def __init__(self) -> None:
        self.lock = threading.RLock()
        self.volume: Ramp[float] = Ramp(1.0)
        self.listener = Listener(lock=self.lock)
        self.playing_samples: list[PlayingSample] = []

    def _start(self, playing: PlayingSample) -> PlayingSample:
        with self.lock:
            self.playing_samples.append(playing)
        return playing

    def play(self, sample: Sample, volume: float = 1.0, pan: float = 0.0) -> PlayingSample:
        """Play ``sample`` once in 2D mode (pan -1 is hard left, 1 hard right)."""
        return self._start(PlayingSample(sample, volume, pan, lock=self.lock))

    def play_3d(
        self,
        sample: Sample,
        volume: float,
        position: Sequence[float],
        half_volume_radius: float = math.inf,
    ) -> PlayingSample:
        """Play ``sample`` once, panned by the listener's view of ``position``."""
        return self._start(
            PlayingSample(
                sample,
                volume,
                position=position,
                half_volume_radius=half_volume_radius,
                lock=self.lock,
            )
        )

    def loop(self, sample: Sample, volume: float = 1.0, pan: float = 0.0) -> PlayingSample:
        """Play ``sample`` repeatedly in 2D mode until stopped."""
        return self._start(PlayingSample(sample, volume, pan, loop=True, lock=self.lock))

    def loop_3d(
        self,
        sample: Sample,
        volume: float,
        position: Sequence[float],
        half_volume_radius: float = math.inf,
    ) -> PlayingSample:
        """Play ``sample`` repeatedly in 3D mode until stopped."""
        return self._start(
            PlayingSample(
                sample,
                volume,
                position=position,
                half_volume_radius=half_volume_radius,
                loop=True,
                lock=self.lock,
            )
        )

    def stop_all_samples(self) -> None:
        """Fade out every playing sample."""
        with self.lock:
            for playing in self.playing_samples:
                playing.stop()

    def set_volume(self, new_volume: float, ramp: float = DEFAULT_RAMP) -> None:
        """Change the global volume over ``ramp`` seconds."""
        with self.lock:
            self.volume.set(float(new_volume), ramp)

    def _weights(self, playing: PlayingSample, position, right) -> np.ndarray:
        if playing.is_3d:
            return np.array(
                compute_pan_from_listener_and_position(
                    position, right, playing.position.value, playing.half_volume_radius.value
                )
            )
        return np.array(compute_pan_weights(playing.pan.value))

    def mix(self) -> np.ndarray:
        """Mix the next block; returns a float32 array of shape (MIX_SAMPLES, 2)."""
        with self.lock:
            buffer = np.zeros((MIX_SAMPLES, 2))

            start_volume = self.volume.value
            start_position = self.listener.position.value.copy()
            start_right = self.listener.right.value.copy()

            step_value_ramp(self.volume)
            step_position_ramp(self.listener.position)
            step_direction_ramp(self.listener.right)

            end_volume = self.volume.value
            end_position = self.listener.position.value
            end_right = self.listener.right.value

            still_playing: list[PlayingSample] = []
            for playing in self.playing_samples:
                length = len(playing.data)
                if length == 0 or playing.i >= length:
                    playing.stopped = True
                    continue

                start_pan = self._weights(playing, start_position, start_right)
                if playing.is_3d:
                    step_position_ramp(playing.position)
                    step_value_ramp(playing.half_volume_radius)
                else:
                    step_value_ramp(playing.pan)
                start_pan = start_pan * (start_volume * playing.volume.value)

                step_value_ramp(playing.volume)

                end_pan = self._weights(playing, end_position, end_right)
                end_pan = end_pan * (end_volume * playing.volume.value)

                pan_step = (end_pan - start_pan) / MIX_SAMPLES

                if playing.loop:
                    count = MIX_SAMPLES
                    indices = (playing.i + np.arange(count)) % length
                    playing.i = (playing.i + count) % length
                else:
                    count = min(MIX_SAMPLES, length - playing.i)
                    indices = playing.i + np.arange(count)
                    playing.i += count

                weights = start_pan[None, :] + np.arange(count)[:, None] * pan_step[None, :]
                buffer[:count] += weights * playing.data[indices].astype(float)[:, None]

                finished = playing.i >= length or (
                    playing.stopping and playing.volume.value == 0.0
                )
                if finished:
                    playing.stopped = True
                else:
                    still_playing.append(playing)

            self.playing_samples = still_playing
            return buffer.astype(np.float32)