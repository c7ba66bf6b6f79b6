"""Errors raised by classification oracles and analysis runs."""


class OracleError(Exception):
    """Base exception for failed oracle requests."""


class OracleRateLimitError(OracleError):
    """Raised when the backend rejects a request because of rate limiting."""


class OracleResponseError(OracleError):
    """Raised when the backend answers with malformed or unparseable data."""


class AnalysisError(Exception):
    """Base exception for analysis runs that cannot start."""


class MissingCredentialError(AnalysisError):
    """Raised when analysis is requested without an oracle credential."""


class AnalysisInProgressError(AnalysisError):
    """Raised when a second analysis is started while one is running."""
