"""
Detection Pipeline

Runs every enabled detector on its own interval timer and publishes
normalized results on the ``detection`` topic.

Per detector, ticks never overlap: a tick that fires while the previous one
is still analyzing is skipped, not queued. Each tick carries the generation
it was started under and its result is dropped if the generation moved on
while the model was running.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, asdict
from typing import Any, Optional, Protocol

import numpy as np

from examguard.detectors.base import BaseDetector, Modality
from examguard.engine.bus import EventBus, Topic
from examguard.engine.timers import GenerationCounter, IntervalTimer
from examguard.utils import get_logger

logger = get_logger(__name__)


class SampleSource(Protocol):
    """Where detectors get their input (the capture coordinator)."""

    async def read_frame(self) -> Optional[np.ndarray]: ...

    async def read_audio_level(self) -> Optional[float]: ...


@dataclass
class DetectorStats:
    """Counters for one detector."""
    ticks: int = 0
    skipped: int = 0
    no_sample: int = 0
    errors: int = 0
    emitted: int = 0
    discarded: int = 0


class DetectionPipeline:
    """
    Schedules detectors for one Active generation at a time.

    Example:
        >>> pipeline = DetectionPipeline(capture, bus, counter)
        >>> pipeline.start(detectors, counter.advance())
        >>> pipeline.stop()
    """

    def __init__(self, source: SampleSource, bus: EventBus, counter: GenerationCounter):
        self.source = source
        self.bus = bus
        self.counter = counter

        self.generation: Optional[int] = None
        self._detectors: list[BaseDetector] = []
        self._timers: list[IntervalTimer] = []
        self._inflight: dict[str, asyncio.Task] = {}
        self._publishing: set[str] = set()
        self._stats: dict[str, DetectorStats] = {}

    @property
    def running(self) -> bool:
        return bool(self._timers)

    @property
    def detectors(self) -> list[BaseDetector]:
        return list(self._detectors)

    def start(self, detectors: list[BaseDetector], generation: int):
        """
        Start one interval timer per enabled detector.

        Args:
            detectors: Detectors to schedule
            generation: Generation the timers belong to
        """
        self.stop()
        self.generation = generation
        self._detectors = [d for d in detectors if d.enabled]

        for detector in self._detectors:
            detector.reset()
            self._stats.setdefault(detector.name, DetectorStats())
            timer = IntervalTimer(
                detector.interval,
                lambda d=detector: self._on_tick(d),
                self.counter,
                generation,
                name=detector.name,
            )
            timer.start()
            self._timers.append(timer)

        logger.info(
            f"🔍 Detection started (generation {generation}): "
            f"{', '.join(d.name for d in self._detectors) or 'no detectors'}"
        )

    def stop(self):
        """Cancel timers and analysis in flight. Never cancels the calling task."""
        if not self._timers and not self._inflight:
            return

        for timer in self._timers:
            timer.cancel()
        self._timers.clear()

        current = asyncio.current_task()
        for name, task in list(self._inflight.items()):
            # A tick already publishing finishes delivering its result
            if task is not current and name not in self._publishing:
                task.cancel()
        self._inflight.clear()

        logger.info(f"⏹️ Detection stopped (generation {self.generation})")

    def _on_tick(self, detector: BaseDetector):
        stats = self._stats[detector.name]
        generation = self.generation
        if generation is None or not self.counter.is_current(generation):
            return

        if detector.name in self._inflight:
            stats.skipped += 1
            logger.debug(f"Skipping {detector.name} tick, previous still running")
            return

        task = asyncio.get_running_loop().create_task(
            self._tick(detector, generation), name=f"examguard-tick-{detector.name}"
        )
        self._inflight[detector.name] = task

        def done(t: asyncio.Task, name: str = detector.name):
            if self._inflight.get(name) is t:
                del self._inflight[name]

        task.add_done_callback(done)

    async def _tick(self, detector: BaseDetector, generation: int):
        stats = self._stats[detector.name]
        stats.ticks += 1

        try:
            sample = await self._read_sample(detector)
            if sample is None:
                stats.no_sample += 1
                return
            result = await detector.analyze(sample)
        except asyncio.CancelledError:
            raise
        except Exception:
            stats.errors += 1
            logger.exception(f"❌ Detector {detector.name} failed")
            return

        if result is None:
            return

        if not self.counter.is_current(generation):
            stats.discarded += 1
            logger.debug(f"Discarding stale {detector.name} result from generation {generation}")
            return

        stats.emitted += 1
        self._publishing.add(detector.name)
        try:
            await self.bus.publish(Topic.DETECTION, result)
        finally:
            self._publishing.discard(detector.name)

    async def _read_sample(self, detector: BaseDetector) -> Any:
        if detector.modality == Modality.AUDIO:
            return await self.source.read_audio_level()
        return await self.source.read_frame()

    def statistics(self) -> dict:
        """Per-detector tick counters."""
        return {
            "generation": self.generation,
            "running": self.running,
            "detectors": {name: asdict(stats) for name, stats in self._stats.items()},
        }
