from __future__ import annotations
"""
Examguard Pipeline - the components started and stopped with the Active phase.

- DetectionPipeline: detector scheduling
- EnvironmentMonitor: fullscreen and connectivity
- ViolationAggregator: counts, warnings and escalation
- InterventionChannel: proctor commands
"""

from examguard.pipeline.detection import DetectionPipeline, DetectorStats, SampleSource
from examguard.pipeline.environment import (
    EnvironmentMonitor,
    EnvironmentSignal,
    EnvironmentSource,
    LocalEnvironmentSource,
)
from examguard.pipeline.aggregator import ViolationAggregator, REPEATED_VIOLATIONS
from examguard.pipeline.interventions import InterventionChannel

__all__ = [
    "DetectionPipeline",
    "DetectorStats",
    "SampleSource",
    "EnvironmentMonitor",
    "EnvironmentSignal",
    "EnvironmentSource",
    "LocalEnvironmentSource",
    "ViolationAggregator",
    "REPEATED_VIOLATIONS",
    "InterventionChannel",
]
