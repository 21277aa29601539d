"""
Services - upload flow orchestration.
"""
from .upload import UploadService

__all__ = ["UploadService"]
