from datetime import datetime, UTC


def _make_error_payload(
    stage: str, err: Exception | str, extra: dict | None = None
) -> dict:
    msg = str(err)
    base = {
        "status": "error",
        "error": msg,
        "stage": stage,
        "timestamp": datetime.now(UTC)
        .isoformat(timespec="milliseconds")
        .replace("+00:00", "Z"),
    }
    if extra:
        base.update(extra)
    return base


class ReviewEngineError(Exception):
    """Base class for every error raised by the review pipeline."""

    stage = "review"


# Input errors: caller fixable, reported before any per-document work.


class InputError(ReviewEngineError):
    stage = "input"


class EmptyFile(InputError):
    def __init__(self, filename: str = ""):
        self.filename = filename
        super().__init__("Uploaded file is empty")


class FileTooLarge(InputError):
    def __init__(self, filename: str = "", limit_bytes: int = 5 * 1024 * 1024):
        self.filename = filename
        self.limit_bytes = limit_bytes
        super().__init__(f"File size exceeds the {limit_bytes // (1024 * 1024)}MB limit")


class UnsupportedFormat(InputError):
    def __init__(self, message: str = "Unsupported file type. Upload a PDF, DOCX, or TXT file"):
        super().__init__(message)


class EmptyRubric(InputError):
    def __init__(self):
        super().__init__("A rubric is required before requesting reviews.")


class NoFiles(InputError):
    def __init__(self):
        super().__init__("Attach at least one proposal file.")


class NoProposalsFound(InputError):
    def __init__(self):
        super().__init__("No PDF or DOCX proposals were found in the upload.")


class BatchTooLarge(InputError):
    def __init__(self, count: int, limit: int):
        self.count = count
        self.limit = limit
        super().__init__(f"Reduce the number of proposals. Limit is {limit}.")


class UnreadableArchive(InputError):
    def __init__(self, filename: str, reason: str = "Bad zip file"):
        self.filename = filename
        super().__init__(f"Unable to read archive {filename}: {reason}")


# Per-document errors: recorded as a ReviewError, siblings keep going.


class ExtractionError(ReviewEngineError):
    stage = "extraction"


class EmptyExtraction(ExtractionError):
    def __init__(self):
        super().__init__("No readable text found in the uploaded file")


class DocumentDecodeError(ExtractionError):
    def __init__(self, filename: str, reason: str):
        self.filename = filename
        super().__init__(f"Could not read {filename}: {reason}")


class CompletionError(ReviewEngineError):
    stage = "completion"

    def __init__(self, message: str, finish_reason: str | None = None):
        self.finish_reason = finish_reason
        super().__init__(message)


class BatchReviewFailed(ReviewEngineError):
    """Raised when no document in a batch produced a review."""

    stage = "batch"

    def __init__(self, errors: list):
        self.errors = list(errors)
        super().__init__("All proposal reviews failed")
