class UsageFetchError(Exception):
    """
    UsageFetchError is the base of every non-fatal failure of a fetch
    cycle. The message is what the presentation layer shows to the
    user; kind is a stable label used for logs and metrics.
    """

    kind: "str" = "fetch"

    def __init__(self, message: "str") -> "None":
        super().__init__(message)
        self.message = message

    def __str__(self) -> "str":
        return self.message


class NoCredentialsError(UsageFetchError):
    kind = "no_credentials"


class NetworkError(UsageFetchError):
    kind = "network"


class NoCacheFileError(UsageFetchError):
    kind = "no_cache_file"


class DecodeError(UsageFetchError):
    kind = "decode"


class UpstreamError(UsageFetchError):
    """
    raised when the payload itself carries an error string.
    """

    kind = "upstream"


class HelperError(UsageFetchError):
    """
    raised when the helper process could not complete, e.g. it
    exceeded its time budget and had to be killed.
    """

    kind = "helper"
