class ConversionError(Exception):
    """Base class for failures that end a conversion request.

    ``status_code`` is the HTTP status the web layer answers with; ``None``
    means no status can be sent anymore (the response already started).
    """

    status_code: int | None = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NoFileProvided(ConversionError):
    status_code = 400

    def __init__(self, message: str = "No file uploaded.") -> None:
        super().__init__(message)


class UploadTooLarge(ConversionError):
    status_code = 413


class DocumentUnreadable(ConversionError):
    # Resubmitting the same bytes can never succeed.
    status_code = 422

    def __init__(self, message: str = "Failed to determine number of pages.") -> None:
        super().__init__(message)


class RasterizationFailed(ConversionError):
    status_code = 500

    def __init__(self, page_number: int, reason: str = "") -> None:
        message = f"Failed to convert page {page_number}."
        if reason:
            message = f"{message} {reason}"
        super().__init__(message)
        self.page_number = page_number


class StreamWriteFailed(ConversionError):
    status_code = None
