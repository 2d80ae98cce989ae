# =========================================================================
# CUSTOM EXCEPTIONS
# =========================================================================

from typing import Optional


class HaloSyncError(Exception):
    """Base exception for sync failures. Carries the HTTP status to report."""
    status_code = 500

    def __init__(self, message: str, details: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        body = {'error': self.message}
        if self.details:
            body['details'] = self.details
        return body


class ConfigurationError(HaloSyncError):
    """Credentials or integration URLs missing or malformed"""
    status_code = 400


class AuthenticationError(HaloSyncError):
    """Token exchange rejected by the provider"""
    status_code = 401


class ExternalApiError(HaloSyncError):
    """Provider answered with a non-2xx status or could not be reached"""
    status_code = 500

    def __init__(self, message: str, provider_status: int = 0, body: str = ''):
        super().__init__(message, details=body or None)
        self.provider_status = provider_status
        self.body = body


class NotLinked(HaloSyncError):
    """Project has no HaloPSA ticket"""
    status_code = 400


class NotFound(HaloSyncError):
    """Internal record (or provider ticket) does not exist"""
    status_code = 404


class ValidationError(HaloSyncError):
    """Required request field missing"""
    status_code = 400
