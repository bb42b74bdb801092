"""
Exceptions and warnings raised by qtab.

Recoverable errors all derive from QtabError so a caller can handle them
in one place. AnswerConflictError is the exception: it signals response
data that cannot be merged without losing answers, and is kept outside the
QtabError tree so a broad handler never hides it.
"""


class QtabError(Exception):
    """Base class for recoverable qtab errors."""
    pass


class PreconditionError(QtabError, ValueError):
    """Raised when an output sink is missing or already closed."""
    pass


class QSFParseError(QtabError):
    """Raised when the survey definition cannot be decoded."""
    pass


class MissingMetadataError(QSFParseError):
    """The definition has no usable SurveyEntry object."""
    pass


class MalformedElementError(QSFParseError):
    """A SurveyElements entry matches no known shape for its tag."""
    pass


class ResponseParseError(QtabError):
    """Raised when the response export is not a readable Responses document."""
    pass


class StreamIOError(QtabError):
    """Raised when reading from or writing to a stream fails."""
    pass


class ConfigError(QtabError):
    """Raised when an options file is invalid."""
    pass


class AnswerConflictError(RuntimeError):
    """
    Two raw answer keys normalized to the same key, both with values.

    This happens with loop-and-merge layouts qtab cannot flatten. Keeping
    either value would silently drop the other, so processing stops.
    """

    def __init__(self, key: str, existing: str, new: str, response_id: str = ""):
        self.key = key
        self.existing = existing
        self.new = new
        self.response_id = response_id
        where = f" in response '{response_id}'" if response_id else ""
        super().__init__(
            f"cannot add '{new}' for answer '{key}'{where}: already have '{existing}'"
        )


class FieldConversionWarning(UserWarning):
    """A scalar field could not be converted; its zero value was used."""
    pass


__all__ = [
    "QtabError",
    "PreconditionError",
    "QSFParseError",
    "MissingMetadataError",
    "MalformedElementError",
    "ResponseParseError",
    "StreamIOError",
    "ConfigError",
    "AnswerConflictError",
    "FieldConversionWarning",
]
