"""Failure taxonomy shared by every layer of the service.

Each error carries the HTTP status it maps to and the message returned in the
``{"status": "fail", "message": ...}`` envelope.
"""
from __future__ import annotations


class ClassifierError(Exception):
    status_code: int = 500
    default_message: str = "Internal server error"

    def __init__(self, message: str | None = None, status_code: int | None = None):
        self.message = message or self.default_message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)


class BadRequest(ClassifierError):
    status_code = 400
    default_message = "No image file uploaded."


class PayloadTooLarge(ClassifierError):
    status_code = 413

    def __init__(self, max_bytes: int):
        self.max_bytes = max_bytes
        super().__init__(
            f"Payload content length greater than maximum allowed: {max_bytes}"
        )


class ServiceUnavailable(ClassifierError):
    status_code = 503
    default_message = "Model is not ready yet. Please try again later."


class PredictionError(ClassifierError):
    status_code = 400
    default_message = "There was an error during the prediction process."


class DecodeError(PredictionError):
    """Bytes are not an image encoding Pillow understands."""


class InferenceTimeout(PredictionError):
    status_code = 504
    default_message = "Prediction took too long. Please try again later."


class StoreError(ClassifierError):
    status_code = 500
    default_message = "Failed to access prediction history."


class InternalError(ClassifierError):
    status_code = 500
    default_message = "Something went wrong during the upload."
