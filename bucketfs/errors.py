from __future__ import annotations

import enum
from typing import Optional, Union

from botocore.exceptions import BotoCoreError, ClientError


class BucketFsError(Exception):
    pass


class ParseError(BucketFsError):
    pass


class AuthError(BucketFsError):
    pass


class BackendConnectionError(BucketFsError, ConnectionError):
    pass


class ConfigError(BucketFsError):
    pass


class NotFound(BucketFsError):
    pass


class ProbeFailure(BucketFsError):
    pass


class CantCopy(BucketFsError):
    pass


class ListingError(BucketFsError):
    pass


class HTTPError(BucketFsError):
    def __init__(self, message: str, status_code: int, body: bytes = b"") -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class ProviderError(BucketFsError):
    """A provider failure with the response details kept for diagnostics."""

    def __init__(
        self,
        message: str,
        code: str = "",
        status_code: Optional[int] = None,
        status_text: str = "",
        body: Optional[dict] = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.status_code = status_code
        self.status_text = status_text
        self.body = body or {}


class ErrorKind(enum.Enum):
    NOT_FOUND = "not_found"
    BUCKET_ALREADY_OWNED = "bucket_already_owned"
    OTHER = "other"


_NOT_FOUND_CODES = {"404", "NoSuchKey", "NoSuchBucket", "NotFound"}


def _error_details(exc: ClientError) -> tuple[str, Optional[int], str]:
    response = exc.response if isinstance(exc.response, dict) else {}
    error = response.get("Error", {}) or {}
    meta = response.get("ResponseMetadata", {}) or {}
    code = str(error.get("Code", "") or "")
    status = meta.get("HTTPStatusCode")
    if not isinstance(status, int):
        status = None
    message = str(error.get("Message", "") or "")
    return code, status, message


def classify_error(exc: BaseException) -> ErrorKind:
    if not isinstance(exc, ClientError):
        return ErrorKind.OTHER
    code, status, _ = _error_details(exc)
    if code == "BucketAlreadyOwnedByYou":
        return ErrorKind.BUCKET_ALREADY_OWNED
    if status == 404 or code in _NOT_FOUND_CODES:
        return ErrorKind.NOT_FOUND
    return ErrorKind.OTHER


def translate_error(
    exc: Union[ClientError, BotoCoreError], what: str
) -> BucketFsError:
    if not isinstance(exc, ClientError):
        # retries exhausted without a response from the provider
        return BackendConnectionError(f"{what}: {exc}")
    code, status, message = _error_details(exc)
    if classify_error(exc) is ErrorKind.NOT_FOUND:
        return NotFound(f"{what}: not found")
    text = f"{what}: {code or 'error'}"
    if status is not None:
        text = f"{text} (HTTP {status})"
    if message:
        text = f"{text}: {message}"
    return ProviderError(
        text,
        code=code,
        status_code=status,
        status_text=message,
        body=exc.response.get("Error") if isinstance(exc.response, dict) else None,
    )
