"""
Infra Worker module.

This module contains the automation worker that runs independently of the
API server. The worker claims jobs from the durable queue, runs them through
the code generators and records their outcome.
"""

from .worker import AutomationWorker

__all__ = ["AutomationWorker"]
