"""
Pipeline error taxonomy.

Every failure a pipeline stage can surface is a PipelineError subclass carrying
the HTTP status it maps to at the API boundary (see main.py). Best-effort steps
catch and log instead of raising.
"""
from __future__ import annotations


class PipelineError(Exception):
    status_code: int = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFound(PipelineError):
    status_code = 404


class ValidationError(PipelineError):
    status_code = 400


class Unauthorized(PipelineError):
    status_code = 401


class UpstreamFetchError(PipelineError):
    """A third-party HTTP call returned non-2xx or could not be completed."""

    status_code = 502


class MediaNotReady(PipelineError):
    status_code = 400


class UploadFailed(PipelineError):
    status_code = 500


class ProcessingTimeout(PipelineError):
    status_code = 500


class InferenceCallFailed(PipelineError):
    status_code = 500


class PersistError(PipelineError):
    status_code = 500


PersistFailed = PersistError


class NoAnalysisFound(NotFound):
    pass
