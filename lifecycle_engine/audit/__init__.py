"""
Audit Package.

This package provides the audit trail of workflow mutations.
"""

from .audit_logger import AuditLogger

__all__ = ["AuditLogger"]
