"""
Domain exceptions for the EcoRewards backend.
Service modules raise these; api/error_utils.py maps them onto HTTP responses.
"""


class EcoRewardsError(Exception):
    """Base class for every error raised by the EcoRewards services."""

    def __init__(self, message="", details=None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


# --- Media ---
class MediaDecodeError(EcoRewardsError):
    """The uploaded image or video could not be decoded."""


class RenderContextError(EcoRewardsError):
    """The output raster could not be drawn or encoded."""


# --- Oracle ---
class OracleUnreachableError(EcoRewardsError):
    """The Gemini call failed before a reply was received."""


class OracleMalformedReplyError(EcoRewardsError):
    """The Gemini reply did not follow the bracketed format."""


# --- Store ---
class NotFoundError(EcoRewardsError):
    pass


class WriteConflictError(EcoRewardsError):
    """A guarded write lost its precondition against a concurrent writer."""


class MalformedDocumentError(EcoRewardsError):
    """A stored document could not be validated into its model."""


# --- Lifecycle ---
class ValidationError(EcoRewardsError):
    """Pre-flight check failed (wrong media type, oversized file, long video...)."""


class InvalidTransitionError(EcoRewardsError):
    pass


class AlreadyVerifiedError(InvalidTransitionError):
    pass


class VerificationInProgressError(EcoRewardsError):
    pass


class VerificationTimeoutError(EcoRewardsError):
    pass


# --- Session ---
class AuthenticationError(EcoRewardsError):
    def __init__(self, message="", error_code="TOKEN_INVALID"):
        super().__init__(message)
        self.error_code = error_code
