"""Error Diagnosis Engine: classify failed process runs for operators."""

from uplink.diagnosis.engine import (
    build_diagnosis,
    diagnose,
    diagnose_spawn_failure,
    format_message,
    format_notification,
    well_known_exit_codes,
)
from uplink.diagnosis.model import ROLE_ENCODER, ROLE_SERVER, Category, Diagnosis, DiagnosisContext, Severity

__all__ = [
    "ROLE_ENCODER",
    "ROLE_SERVER",
    "Category",
    "Diagnosis",
    "DiagnosisContext",
    "Severity",
    "build_diagnosis",
    "diagnose",
    "diagnose_spawn_failure",
    "format_message",
    "format_notification",
    "well_known_exit_codes",
]
