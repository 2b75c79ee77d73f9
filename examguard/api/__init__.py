from __future__ import annotations
"""
Examguard API

FastAPI server for session control.
"""

from examguard.api.server import app, create_app, start_server

__all__ = ["app", "create_app", "start_server"]
