"""
Analyze service: validates an uploaded MP3 and counts its frames through an
injected executor. Failures surface as ``AnalyzeError`` subclasses whose
``to_response()`` gives the caller-facing error body.
"""
import logging
import mimetypes
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .constants import BYTES_PER_MB, MP3_EXTENSION, MP3_MIME_TYPES
from .errors import (
    AnalyzeError,
    BufferBoundsError,
    ExecutionTimeoutError,
    ExecutorError,
    FileTooLargeError,
    InvalidFileTypeError,
    NoFileError,
    PoolBusyError,
    ProcessingError,
    ProcessingTimeoutError,
    TooManyRequestsError,
)
from .executor import FrameCountExecutor

logger = logging.getLogger(__name__)


@dataclass
class UploadedFile:
    filename: str
    content_type: Optional[str]
    data: bytes


@dataclass
class AnalyzeResult:
    file_name: str
    frame_count: int

    def to_response(self) -> dict:
        return {"status": "success", "fileName": self.file_name, "frameCount": self.frame_count}


def is_mp3(upload: UploadedFile) -> bool:
    content_type = (upload.content_type or "").split(";")[0].strip().lower()
    return content_type in MP3_MIME_TYPES or (upload.filename or "").lower().endswith(MP3_EXTENSION)


def error_response(exc: AnalyzeError) -> dict:
    return exc.to_response()


class AnalyzeService:
    def __init__(self, executor: FrameCountExecutor, max_file_size: int = 100 * BYTES_PER_MB):
        self.executor = executor
        self.max_file_size = max_file_size

    def analyze(self, upload: Optional[UploadedFile]) -> AnalyzeResult:
        if upload is None or upload.data is None:
            raise NoFileError()
        if not is_mp3(upload):
            logger.info("Rejected %r: not an MP3 (content type %r)", upload.filename, upload.content_type)
            raise InvalidFileTypeError()
        size = len(upload.data)
        if size > self.max_file_size:
            logger.info("Rejected %r: %d bytes exceeds limit of %d", upload.filename, size, self.max_file_size)
            raise FileTooLargeError(
                f"File is {size} bytes, the limit is {self.max_file_size // BYTES_PER_MB} MB")

        return AnalyzeResult(file_name=upload.filename, frame_count=self._count(upload))

    def analyze_file(self, path: str) -> AnalyzeResult:
        p = Path(path)
        content_type, _ = mimetypes.guess_type(p.name)
        return self.analyze(UploadedFile(filename=p.name, content_type=content_type, data=p.read_bytes()))

    def _count(self, upload: UploadedFile) -> int:
        try:
            return self.executor.execute(upload.data)
        except BufferBoundsError:
            # unreadable frame data counts as "no frames"
            return 0
        except ExecutionTimeoutError as e:
            logger.warning("Timed out counting frames in %r: %s", upload.filename, e)
            raise ProcessingTimeoutError() from e
        except PoolBusyError as e:
            logger.warning("Rejected %r: %s", upload.filename, e)
            raise TooManyRequestsError() from e
        except ExecutorError as e:
            logger.error("Failed to count frames in %r", upload.filename, exc_info=True)
            raise ProcessingError(str(e)) from e
