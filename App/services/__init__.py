"""
Service layer for business logic.

The service layer holds the read-side coverage logic, separated from HTTP
request handling (views) and data persistence (models).
"""

from .coverage_service import CoverageService
from .data_transformation_service import DataTransformationService

__all__ = [
    'CoverageService',
    'DataTransformationService'
]
