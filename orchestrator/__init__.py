"""
Orchestration package for export, import and scheduled sync runs.

- run_orchestrator: builds each run's components, catches typed errors once
  and flushes the run log
- run_lease: lock file that keeps runs from interleaving
"""

from .run_lease import RunLease
from .run_orchestrator import RunOrchestrator

__all__ = [
    'RunOrchestrator',
    'RunLease'
]
