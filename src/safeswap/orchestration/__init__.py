"""Orchestration layer — post-commit workflows."""

from safeswap.orchestration.completion_flow import run_completion_workflow

__all__ = ["run_completion_workflow"]
