"""
Storage Module

Patient/report persistence over a pluggable key-value backend.
"""
from .backends import KeyValueStorage, InMemoryStorage, DiskCacheStorage
from .patient_store import (
    PatientStore,
    PatientInput,
    StoredPatient,
    ReportInput,
    DiabetesReport,
    PatientStats,
)

__all__ = [
    "KeyValueStorage",
    "InMemoryStorage",
    "DiskCacheStorage",
    "PatientStore",
    "PatientInput",
    "StoredPatient",
    "ReportInput",
    "DiabetesReport",
    "PatientStats",
]
