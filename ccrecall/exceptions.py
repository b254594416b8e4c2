"""Exception hierarchy for ccrecall."""


class CcrecallError(Exception):
    """Base exception for all ccrecall errors."""

    exit_code = 1

    def __init__(self, message: str, exit_code: int | None = None, hint: str | None = None):
        super().__init__(message)
        self.message = message
        if exit_code:
            self.exit_code = exit_code
        if hint and hasattr(self, "add_note"):
            self.add_note(hint)


class TranscriptReadError(CcrecallError):
    """A transcript file could not be read. Aborts the containing sync run."""

    exit_code = 66

    def __init__(self, path, cause: Exception | None = None):
        message = f"Cannot read transcript {path}"
        if cause:
            message += f": {cause}"
        super().__init__(message)
        self.path = path
        self.cause = cause


class InvalidQueryError(CcrecallError):
    """Search options or query text that cannot be executed."""

    exit_code = 65


class StorageError(CcrecallError):
    """Database failures: unopenable store, locked store, integrity violations."""

    exit_code = 74
