"""
Utility helpers used by the migration tool.

This subpackage exposes convenience functions for the run log,
structured JSONL reports, the shared run context and the manual upload
CSV.
"""

from .errors import ERRORS, report_error, report_ok
from .logs import log_message
from .reports import generate_manual_uploads_csv
from .run_context import RunContext, ShutdownRequested

__all__ = [
    "ERRORS",
    "report_error",
    "report_ok",
    "log_message",
    "generate_manual_uploads_csv",
    "RunContext",
    "ShutdownRequested",
]
