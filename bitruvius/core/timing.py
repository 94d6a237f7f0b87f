"""Frame timing for the externally driven simulation loop"""

import time
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Optional


@dataclass
class FrameData:
    """Timing information handed to one simulation step."""
    frame_number: int
    timestamp: float  # Simulation seconds since start
    delta_time: float  # Seconds since previous frame


class FrameTimer:
    """Measures how long solve passes take, over a sliding window."""

    def __init__(self, window_size: int = 60):
        self._window_size = window_size
        self._samples: Deque[float] = deque(maxlen=window_size)
        self._start_time: Optional[float] = None
        self._last_sample: Optional[float] = None

    def start(self) -> None:
        self._start_time = time.perf_counter()

    def stop(self) -> float:
        """Stop timing and return elapsed seconds."""
        if self._start_time is None:
            return 0.0

        elapsed = time.perf_counter() - self._start_time
        self._samples.append(elapsed)
        self._last_sample = elapsed
        self._start_time = None
        return elapsed

    def __enter__(self) -> "FrameTimer":
        self.start()
        return self

    def __exit__(self, *exc) -> None:
        self.stop()

    @property
    def last_time(self) -> float:
        return self._last_sample or 0.0

    @property
    def average_time(self) -> float:
        if not self._samples:
            return 0.0
        return sum(self._samples) / len(self._samples)

    @property
    def max_time(self) -> float:
        return max(self._samples) if self._samples else 0.0

    def reset(self) -> None:
        self._samples.clear()
        self._start_time = None
        self._last_sample = None


@dataclass
class FrameClock:
    """
    Supplies delta time to the simulation loop.

    With ``fixed_dt`` set, every tick advances by exactly that amount
    (deterministic headless runs); otherwise wall-clock time is measured.
    Delta time is capped at ``max_dt`` so a stalled frame cannot produce a
    huge smoothing step.
    """
    target_fps: float = 60.0
    fixed_dt: Optional[float] = None
    max_dt: float = 0.25
    _frame_count: int = field(default=0, init=False)
    _timestamp: float = field(default=0.0, init=False)
    _last_wall: Optional[float] = field(default=None, init=False)

    def tick(self) -> FrameData:
        """Advance to the next frame."""
        if self.fixed_dt is not None:
            dt = self.fixed_dt
        else:
            now = time.perf_counter()
            dt = 0.0 if self._last_wall is None else now - self._last_wall
            self._last_wall = now

        dt = min(max(dt, 0.0), self.max_dt)
        self._timestamp += dt

        frame = FrameData(
            frame_number=self._frame_count,
            timestamp=self._timestamp,
            delta_time=dt
        )
        self._frame_count += 1
        return frame

    @property
    def frame_count(self) -> int:
        return self._frame_count

    @property
    def elapsed_time(self) -> float:
        return self._timestamp

    @property
    def target_frame_duration(self) -> float:
        return 1.0 / self.target_fps

    def wait_for_next_frame(self) -> float:
        """Sleep out the remainder of the frame budget (real-time runs only)."""
        if self.fixed_dt is not None or self._last_wall is None:
            return 0.0

        wait_time = self.target_frame_duration - (time.perf_counter() - self._last_wall)
        if wait_time > 0:
            time.sleep(wait_time)
            return wait_time
        return 0.0

    def reset(self) -> None:
        self._frame_count = 0
        self._timestamp = 0.0
        self._last_wall = None
