"""Error taxonomy for the caption translator."""


class TranslatorError(Exception):
    """Base class for every error raised by the translator"""


class ConfigError(TranslatorError):
    """Credentials or required settings are missing; aborts a batch run"""


class BackendError(TranslatorError):
    """The remote model call failed or returned no usable payload"""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class ParseError(TranslatorError):
    """Model output could not be turned into translated records"""


class CacheError(TranslatorError):
    """Reading from or writing to the persistent store failed"""


class TranslationError(TranslatorError):
    """A single-sentence translation produced nothing usable"""
