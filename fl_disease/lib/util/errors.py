"""
Error taxonomy of the contributor training pipeline.

Every failure carries the stage it happened in so the caller can tell a bad
file apart from a model that trained but could not be saved.
"""
from typing import Any, Dict, Optional


class PipelineError(Exception):
    """Base class for all pipeline failures"""
    stage = 'pipeline'

    def __init__(self, message: str, stage: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if stage is not None:
            self.stage = stage

    def __str__(self):
        return f'[{self.stage}] {self.message}'


class FormatError(PipelineError):
    """File is empty, not CSV, or has an unusable header"""
    stage = 'parse'


class SchemaError(PipelineError):
    """
    Structural pre-check failed (missing columns, too few rows).
    details holds row_count, column_count and missing_columns.
    """
    stage = 'validate'

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.details = details or {}


class EncodingError(PipelineError):
    """No usable rows survived encoding, or too many were skipped"""
    stage = 'encode'


class TrainingError(PipelineError):
    """Numerical or runtime failure while fitting the model"""
    stage = 'fit'


class PersistenceError(PipelineError):
    """Model trained but could not be persisted"""
    stage = 'persist'


class LocalSaveError(PersistenceError):
    stage = 'save'


class RemoteUploadError(PersistenceError):
    stage = 'upload'

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message)
        self.path = path
