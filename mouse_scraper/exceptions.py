"""Custom exception classes for the park catalog scraper"""

from typing import Optional


class MouseScraperError(Exception):
    """Base exception for scraper errors"""

    pass


class CredentialEstablishmentError(MouseScraperError):
    """Raised when the browser could not produce a usable session

    Never escapes SessionManager.get_session / get_auth_headers; it is
    recorded as session health data and those calls return None / {}.
    """

    pass


class BrowserBackendError(CredentialEstablishmentError):
    """Raised when a browser backend cannot launch or connect"""

    pass


class ApiError(MouseScraperError):
    """Raised for upstream HTTP failures"""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        endpoint: str = "",
    ):
        self.status_code = status_code
        self.endpoint = endpoint
        super().__init__(message)


class AuthClassifiedError(ApiError):
    """Raised on 401/403 or when no credential headers are available

    Triggers fallback delegation in the orchestrator.
    """

    pass


class TransientUpstreamError(ApiError):
    """Raised for any other HTTP failure or a timed-out attempt"""

    pass


class NormalizationError(MouseScraperError):
    """Raised when a single payload field cannot be translated

    Caught per field by the normalizers, which degrade the field to None.
    """

    def __init__(self, field_name: str, message: str):
        self.field_name = field_name
        super().__init__(f"{field_name}: {message}")
