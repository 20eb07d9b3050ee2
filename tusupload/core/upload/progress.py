"""
Upload progress tracking.

ProgressTracker keeps per-upload offsets and a small ring of snapshots
for speed estimation. ProgressAggregator sums many trackers for a single
overall progress bar. ProgressFormatter renders values for display.
"""
import math
import time
from collections import deque
from datetime import datetime, timedelta
from typing import Callable, Deque, Dict, List, NamedTuple, Optional

from .models import ProgressInfo, TotalProgress

SPEED_WINDOW = 5


def round_half_up(value: float) -> int:
    """Round .5 away from zero for positive values, like a UI would."""
    return int(math.floor(value + 0.5))


class ProgressSnapshot(NamedTuple):
    timestamp: float
    bytes_uploaded: int


class ProgressTracker:
    """
    Tracks progress of one upload.

    Example:
        >>> tracker = ProgressTracker("id-1", "laporan.pdf", 4096)
        >>> tracker.update_progress(1024).percentage
        25
    """

    def __init__(
        self,
        upload_id: str,
        file_name: str,
        bytes_total: int,
        max_snapshots: int = 10,
        clock: Callable[[], float] = time.monotonic
    ):
        """
        Initialize tracker.

        Args:
            upload_id: Server-issued upload id
            file_name: Name shown to the user
            bytes_total: Total upload length
            max_snapshots: Size of the snapshot ring
            clock: Time source in seconds
        """
        self.upload_id = upload_id
        self.file_name = file_name
        self.bytes_total = bytes_total
        self.bytes_uploaded = 0
        self._clock = clock
        self._snapshots: Deque[ProgressSnapshot] = deque(maxlen=max_snapshots)
        self.start_time = clock()

    @property
    def snapshots(self) -> List[ProgressSnapshot]:
        return list(self._snapshots)

    def update_progress(self, bytes_uploaded: int) -> ProgressInfo:
        """Record a new offset and return the resulting progress."""
        self.bytes_uploaded = bytes_uploaded
        self._snapshots.append(ProgressSnapshot(self._clock(), bytes_uploaded))
        return self.get_progress()

    def get_progress(self) -> ProgressInfo:
        speed = self._calculate_speed()
        return ProgressInfo(
            upload_id=self.upload_id,
            file_name=self.file_name,
            bytes_uploaded=self.bytes_uploaded,
            bytes_total=self.bytes_total,
            percentage=self._calculate_percentage(),
            speed=speed,
            remaining_time=self._calculate_remaining_time(speed),
            start_time=self.start_time,
        )

    def _calculate_percentage(self) -> int:
        if self.bytes_total == 0:
            return 0
        return round_half_up(self.bytes_uploaded / self.bytes_total * 100)

    def _calculate_speed(self) -> float:
        if len(self._snapshots) < 2:
            elapsed = self._clock() - self.start_time
            if elapsed <= 0:
                return 0.0
            return self.bytes_uploaded / elapsed

        recent = list(self._snapshots)[-SPEED_WINDOW:]
        first, last = recent[0], recent[-1]
        time_diff = last.timestamp - first.timestamp
        if time_diff <= 0:
            return 0.0

        return (last.bytes_uploaded - first.bytes_uploaded) / time_diff

    def _calculate_remaining_time(self, speed: float) -> Optional[int]:
        if speed <= 0:
            return None
        remaining = self.bytes_total - self.bytes_uploaded
        return round_half_up(remaining / speed)

    def reset(self) -> None:
        self.bytes_uploaded = 0
        self.start_time = self._clock()
        self._snapshots.clear()

    def is_complete(self) -> bool:
        return self.bytes_uploaded >= self.bytes_total

    def elapsed_time(self) -> float:
        """Seconds since the tracker started."""
        return self._clock() - self.start_time

    def bytes_remaining(self) -> int:
        return max(0, self.bytes_total - self.bytes_uploaded)


class ProgressAggregator:
    """Holds many trackers by upload id."""

    def __init__(self):
        self._trackers: Dict[str, ProgressTracker] = {}

    def add_tracker(self, tracker: ProgressTracker) -> None:
        self._trackers[tracker.upload_id] = tracker

    def remove_tracker(self, upload_id: str) -> None:
        self._trackers.pop(upload_id, None)

    def get_tracker(self, upload_id: str) -> Optional[ProgressTracker]:
        return self._trackers.get(upload_id)

    def get_all_progress(self) -> List[ProgressInfo]:
        return [tracker.get_progress() for tracker in self._trackers.values()]

    def get_total_progress(self) -> TotalProgress:
        """Sum bytes across all trackers."""
        bytes_uploaded = sum(t.bytes_uploaded for t in self._trackers.values())
        bytes_total = sum(t.bytes_total for t in self._trackers.values())
        percentage = round_half_up(bytes_uploaded / bytes_total * 100) if bytes_total > 0 else 0

        return TotalProgress(
            bytes_uploaded=bytes_uploaded,
            bytes_total=bytes_total,
            percentage=percentage,
            active_uploads=len(self._trackers),
        )

    def clear(self) -> None:
        self._trackers.clear()

    def __len__(self) -> int:
        return len(self._trackers)


class ProgressFormatter:
    """Presentation helpers for progress values."""

    UNITS = ('B', 'KB', 'MB', 'GB')

    @classmethod
    def format_bytes(cls, num_bytes: float) -> str:
        """
        Format a byte count using 1024 scaling.

        One decimal at most, trailing '.0' dropped: 1536 -> '1.5 KB'.
        """
        if num_bytes <= 0:
            return '0 B'

        index = 0
        value = float(num_bytes)
        while value >= 1024 and index < len(cls.UNITS) - 1:
            value /= 1024
            index += 1
        text = f"{value:.1f}"
        if text.endswith('.0'):
            text = text[:-2]
        return f"{text} {cls.UNITS[index]}"

    @classmethod
    def format_speed(cls, bytes_per_second: float) -> str:
        return f"{cls.format_bytes(bytes_per_second)}/s"

    @staticmethod
    def format_time(seconds: float) -> str:
        """Seconds below a minute, minutes+seconds below an hour, else hours+minutes."""
        if seconds < 60:
            return f"{round_half_up(seconds)} detik"

        if seconds < 3600:
            minutes = int(seconds // 60)
            remaining_seconds = round_half_up(seconds % 60)
            return f"{minutes} menit {remaining_seconds} detik"

        hours = int(seconds // 3600)
        remaining_minutes = int((seconds % 3600) // 60)
        return f"{hours} jam {remaining_minutes} menit"

    @staticmethod
    def format_percentage(percentage: int) -> str:
        return f"{percentage}%"

    @classmethod
    def format_progress_summary(cls, progress: ProgressInfo) -> str:
        """'1 MB / 4 MB (25%) - 512 KB/s - 6 detik tersisa'"""
        summary = (
            f"{cls.format_bytes(progress.bytes_uploaded)} / "
            f"{cls.format_bytes(progress.bytes_total)} "
            f"({cls.format_percentage(progress.percentage)})"
        )

        if progress.speed and progress.speed > 0:
            summary += f" - {cls.format_speed(progress.speed)}"
            if progress.remaining_time is not None:
                summary += f" - {cls.format_time(progress.remaining_time)} tersisa"

        return summary

    @staticmethod
    def format_eta(progress: ProgressInfo, now: Optional[datetime] = None) -> Optional[str]:
        """Local wall-clock time of completion as HH:MM, or None."""
        if progress.remaining_time is None:
            return None
        now = now or datetime.now()
        eta = now + timedelta(seconds=progress.remaining_time)
        return eta.strftime('%H:%M')
