"""
Cheque extractors.

- TableExtractor: PlatformaOFD HTML cheque tables
- JsonExtractor: Costviser /checks JSON listings
- ExtractorRouter: picks the extractor for an observed response URL
"""

from .base import BaseExtractor, ExtractionResult
from .costviser_schema import SchemaMatch, SchemaMismatch, validate_checks_response
from .json_extractor import DEFAULT_MAPPING, ChequeMapping, JsonExtractor, extract_costviser
from .router import ExtractorRouter, Route
from .table_extractor import TableExtractor, parse_cheques

__all__ = [
    "BaseExtractor",
    "ExtractionResult",
    "TableExtractor",
    "parse_cheques",
    "JsonExtractor",
    "extract_costviser",
    "ChequeMapping",
    "DEFAULT_MAPPING",
    "validate_checks_response",
    "SchemaMatch",
    "SchemaMismatch",
    "ExtractorRouter",
    "Route",
]
