"""
Execution adapters for the frame scanner.

The analyze service only depends on ``FrameCountExecutor``; whether the scan
runs in the caller's thread or in a worker process is decided by whoever
constructs the service.
"""
from abc import ABC, abstractmethod

from .mp3_parser import count_frames


class FrameCountExecutor(ABC):

    @abstractmethod
    def execute(self, buffer) -> int:
        """Count the frames in ``buffer`` and return the count."""

    def shutdown(self, wait: bool = True) -> None:
        pass

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.shutdown()
        return False


class DirectExecutor(FrameCountExecutor):
    """Runs the scan synchronously in the calling thread."""

    def execute(self, buffer) -> int:
        return count_frames(buffer)
