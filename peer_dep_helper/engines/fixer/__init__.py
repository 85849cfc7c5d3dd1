"""Fixer engine — plan and apply installs for missing or mismatched peers."""

from peer_dep_helper.engines.fixer.orchestrator import (
    MAX_FIX_ITERATIONS,
    FixOrchestrator,
    FixOutcome,
    PlannedInstall,
)

__all__ = ["MAX_FIX_ITERATIONS", "FixOrchestrator", "FixOutcome", "PlannedInstall"]
