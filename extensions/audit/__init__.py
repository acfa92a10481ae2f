"""
Audit trail for external tool runs and analysis results.
"""

from .store import AuditTrail

__all__ = ["AuditTrail"]
