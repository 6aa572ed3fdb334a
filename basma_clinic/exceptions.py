from typing import Dict, Optional

from fastapi import HTTPException


class NotFound(HTTPException):
    """Patient or session is absent from the record store."""

    def __init__(self, detail: str = "Not found", message_key: Optional[str] = None):
        self.message_key = message_key
        super().__init__(status_code=404, detail=detail)


class StoreUnavailable(HTTPException):
    """Remote record storage failed or is unreachable. Retryable by the user."""
    message_key = "errors.storeUnavailable"

    def __init__(self, detail: str = "Record store unavailable"):
        super().__init__(status_code=503, detail=detail)


class RecordValidationError(HTTPException):
    """Field-level validation failure raised from the service layer.

    ``errors`` maps field names to i18n message keys, e.g.
    ``{"nationalId": "patient.invalidIdNumber"}``.
    """
    message_key = "errors.validationFailed"

    def __init__(self, errors: Dict[str, str], detail: Optional[str] = None):
        self.errors = dict(errors)
        super().__init__(status_code=422, detail=detail or "Validation failed")


class LocalStorageUnavailable(Exception):
    """Local draft storage could not be read or written (quota, permissions, disk)."""
