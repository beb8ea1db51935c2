"""
Error types raised by the upload service.
Each carries the HTTP status it is reported with; main.py turns them into
``{"message": ...}`` JSON responses.
"""


class UploadServiceError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class BadRequest(UploadServiceError):
    """Missing or malformed request input"""
    status_code = 400


class NotFound(UploadServiceError):
    status_code = 404


class PayloadTooLarge(UploadServiceError):
    """Batch exceeds the configured file count or per-file size"""
    status_code = 413


class InternalError(UploadServiceError):
    """Storage I/O failure or any other unexpected exception"""
    status_code = 500
