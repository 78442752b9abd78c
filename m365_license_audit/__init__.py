"""
M365 High-Cost License Audit
============================
A read-only Microsoft 365 audit that reports accounts holding high-cost
licenses despite prolonged sign-in inactivity.

WARNING: This tool operates in STRICT READ-ONLY mode.
         No write operations will be performed against the tenant.
"""

__version__ = "1.0.0"
__author__ = "M365 License Audit"
__mode__ = "READ-ONLY"
