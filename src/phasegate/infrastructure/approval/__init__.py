"""
Approval channel adapters.
"""

from phasegate.infrastructure.approval.console import ConsoleApprovalChannel
from phasegate.infrastructure.approval.queue import QueueApprovalChannel

__all__ = [
    "ConsoleApprovalChannel",
    "QueueApprovalChannel",
]
