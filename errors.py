from typing import Optional


class ImporterError(Exception):
    """Base class for every error raised by the import pipeline."""


class ValidationError(ImporterError):
    """Job or parser options failed validation before any work started."""


class ParseError(ImporterError):
    def __init__(self, path, line: Optional[int] = None, reason: str = ""):
        self.path = str(path)
        self.line = line
        self.reason = reason
        if line is None:
            message = f"Error parsing {self.path}"
        else:
            message = f"Error parsing line {line} of {self.path}"
        if reason:
            message += f": {reason}"
        super().__init__(message)


class OffsetRecoveryError(ImporterError):
    """A word surface could not be located in the original text."""

    def __init__(self, text: str, surface: str, cursor: int):
        self.text = text
        self.surface = surface
        self.cursor = cursor
        super().__init__(
            f"Could not find {surface!r} after offset {cursor} in {text!r}"
        )


class IdentityCollisionError(ImporterError):
    """Two different records were assigned the same quote id."""

    def __init__(self, quote_id: int):
        self.quote_id = quote_id
        super().__init__(f"Quote id {quote_id} was assigned to different content")


class WikiRedirectError(ImporterError):
    def __init__(self, page: str, target: str):
        self.page = page
        self.target = target
        super().__init__(f'"{page}" redirects to "{target}"')


class UnsupportedAudioFormatError(ImporterError):
    pass
