"""
Orchestration package for the publish pipeline.

Fetch -> Transform -> Resolve references / Publish assets -> Rewrite -> Share.
"""

from .publish_orchestrator import PublishOrchestrator

__all__ = ['PublishOrchestrator']
