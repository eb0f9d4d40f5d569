"""Exception hierarchy for the trial matcher.

Only configuration mistakes propagate to callers. Oracle failures are raised
by oracle implementations and converted into ``error=True`` match results by
the semantic match client.
"""


class TrialMatcherError(Exception):
    """Base error for the trial matcher."""
    pass


class AuthenticationError(TrialMatcherError):
    """Missing or empty credential for the semantic oracle."""
    pass


class OracleError(TrialMatcherError):
    """Base error for semantic oracle failures."""
    pass


class OracleTransportError(OracleError):
    """The oracle could not be reached."""
    pass


class OracleAPIError(OracleError):
    """The oracle answered with a non-success status."""

    def __init__(self, message: str, status_code: int = 0):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class OracleResponseError(OracleError):
    """The oracle answered, but the payload was not in the expected shape."""
    pass


class TermValidationError(TrialMatcherError):
    """Submitted term-review payload failed validation."""
    pass
