class BufferBoundsError(IndexError):
    """Raised when a frame header would be read past either end of the buffer."""


# ---- executor failures ----

class ExecutorError(Exception): ...
class ExecutionTimeoutError(ExecutorError): ...
class PoolBusyError(ExecutorError): ...
class PoolClosedError(ExecutorError): ...
class WorkerCrashedError(ExecutorError): ...
class WorkerError(ExecutorError): ...


# ---- analyze (caller-facing) failures ----

class AnalyzeError(Exception):
    code = "INTERNAL_ERROR"
    status_code = 500
    default_message = "Failed to process the MP3 file"

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_response(self) -> dict:
        return {"status": "error", "error": self.code, "message": self.message}


class NoFileError(AnalyzeError):
    code = "NO_FILE_UPLOADED"
    status_code = 400
    default_message = "Please provide an MP3 file to analyze"


class InvalidFileTypeError(AnalyzeError):
    code = "INVALID_FILE_TYPE"
    status_code = 415
    default_message = "Only MP3 files are allowed"


class FileTooLargeError(AnalyzeError):
    code = "FILE_TOO_LARGE"
    status_code = 413
    default_message = "File exceeds the maximum allowed size"


class ProcessingTimeoutError(AnalyzeError):
    code = "REQUEST_TIMEOUT"
    status_code = 408
    default_message = "Processing took too long and was aborted"


class TooManyRequestsError(AnalyzeError):
    code = "TOO_MANY_REQUESTS"
    status_code = 429
    default_message = "Too many files are being processed, please try again later"


class ProcessingError(AnalyzeError): ...
