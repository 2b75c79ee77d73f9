from __future__ import annotations
"""
Examguard Service

Lifecycle manager for one exam attempt and its LiveKit runtime.
"""

from examguard.service.session import ProctoringSession
from examguard.service.runtime import SessionRuntime, create_livekit_runtime

__all__ = [
    "ProctoringSession",
    "SessionRuntime",
    "create_livekit_runtime",
]
