"""
Infra Server module.

This module contains the automation service facade and the FastAPI HTTP
surface that exposes it.
"""

from .service import AutomationService

__all__ = ["AutomationService"]
