class CountryRefreshError(Exception):
    """Base class for failures raised by the refresh pipeline."""


class FetchError(CountryRefreshError):
    """An external source could not be reached or returned an unusable payload."""

    def __init__(self, source, reason):
        super().__init__(f"{source}: {reason}")
        self.source = source
        self.reason = reason


class PersistError(CountryRefreshError):
    """The refresh batch could not be written; nothing was committed."""


class RenderError(CountryRefreshError):
    """The summary image could not be generated."""
