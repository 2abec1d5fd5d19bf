class ExtractionError(Exception):
    """Base class for every error raised by ole2math."""

    def __init__(self, message: str = None, *, cause: Exception = None):
        if message is None:
            message = "Extraction failed"
        super().__init__(message)
        # Use exception chaining if cause is provided
        self.__cause__ = cause


class PackageReadError(ExtractionError):
    """Raised when the document package cannot be read at all."""


class ExtractionFileEncryptedError(PackageReadError):
    """Raised when the document package is encrypted or password-protected."""


class ExtractionZipBombError(PackageReadError):
    """Raised when the package looks like a ZIP bomb."""


class ExtractionFileTooLargeError(PackageReadError):
    """Raised when the raw document exceeds the configured size cap."""

    def __init__(self, size: int, limit: int, *, cause: Exception = None):
        self.size = size
        self.limit = limit
        super().__init__(
            f"Document too large ({size} bytes > {limit} bytes)", cause=cause
        )


class CorruptContainerError(ExtractionError):
    """Raised when a compound file header, directory or sector chain is invalid."""


class ConverterProcessError(ExtractionError):
    """Raised when the external equation converter fails or produces no markup."""


class ConverterTimeoutError(ExtractionError):
    """Raised when the external equation converter exceeds its time budget."""

    def __init__(self, timeout: float, *, cause: Exception = None):
        self.timeout = timeout
        super().__init__(f"Equation converter timed out after {timeout}s", cause=cause)


class LatexTranscodeError(ExtractionError):
    """Raised when math markup cannot be transcoded to LaTeX."""
