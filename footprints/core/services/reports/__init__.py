"""
Synthetic diagnostic reports — generation, validation, and text layout.

Usable standalone: ``generate(seed=42)`` needs no installation.
"""

from footprints.core.services.reports.generator import (
    ReportValidationError,
    generate,
    report_problems,
    validate_report,
)
from footprints.core.services.reports.render import check_document, render_report

__all__ = [
    "ReportValidationError",
    "check_document",
    "generate",
    "render_report",
    "report_problems",
    "validate_report",
]
