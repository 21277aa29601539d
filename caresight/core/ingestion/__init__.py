"""
Ingestion Module

CSV reading and per-domain record/payload construction.
"""
from .csv_reader import CsvTable, read_csv_text, decode_upload
from .records import (
    MaternalSeriesItem,
    extract_maternal,
    extract_maternal_series,
    extract_cardiovascular,
    parse_float,
)
from .payload import Demographics, RISK_HORIZONS, build_cohort_payload, coerce_cell

__all__ = [
    "CsvTable",
    "read_csv_text",
    "decode_upload",
    "MaternalSeriesItem",
    "extract_maternal",
    "extract_maternal_series",
    "extract_cardiovascular",
    "parse_float",
    "Demographics",
    "RISK_HORIZONS",
    "build_cohort_payload",
    "coerce_cell",
]
