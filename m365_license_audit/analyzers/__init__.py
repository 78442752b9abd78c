from .license_analyzer import (
    InactiveLicenseAnalyzer,
    days_inactive,
    evaluate_account,
    find_candidates,
    matched_licenses,
)

__all__ = [
    "InactiveLicenseAnalyzer",
    "days_inactive",
    "evaluate_account",
    "find_candidates",
    "matched_licenses",
]
