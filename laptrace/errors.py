"""Exceptions raised while turning a raw log into a ParsedFile."""


class LaptraceError(Exception):
    """Base exception for all laptrace errors."""


class FormatError(LaptraceError):
    """Base exception for log parsing failures."""


class FormatDetectionFailure(FormatError):
    """Raised when no normalizer recognizes the content."""


class MalformedData(FormatError):
    """Raised when a recognized format is missing mandatory data or is corrupt."""

    def __init__(self, reason: str, format_name: str = "") -> None:
        self.reason = reason
        self.format_name = format_name
        message = f"{format_name}: {reason}" if format_name else reason
        super().__init__(message)


class NoValidSamples(FormatError):
    """Raised when a file is structurally valid but every GPS fix was filtered out."""

    def __init__(self, format_name: str, rejected: int = 0) -> None:
        self.format_name = format_name
        self.rejected = rejected
        super().__init__(f"No valid GPS samples found in {format_name} file ({rejected} rows rejected)")
