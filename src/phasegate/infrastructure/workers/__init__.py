"""
Worker adapters.
"""

from phasegate.infrastructure.workers.mock import ScriptedWorker

__all__ = [
    "ScriptedWorker",
]
