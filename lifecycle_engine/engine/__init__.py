"""
Core engine components: template store, dependency resolver, progress
aggregation, transactional repository, instance manager and exception
tracking.
"""

from .exception_tracker import ExceptionTracker
from .instance_manager import WorkflowInstanceManager
from .repository import WorkflowRepository
from .template_store import TemplateStore

__all__ = [
    "ExceptionTracker",
    "TemplateStore",
    "WorkflowInstanceManager",
    "WorkflowRepository",
]
