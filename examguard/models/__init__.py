"""
Examguard Models

Optional model adapters for the pluggable detectors. Each adapter imports
its ML stack when it is loaded, so hosts without ultralytics or mediapipe
can still run with their own models.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from examguard.cfg import Settings
from examguard.detectors.base import FaceModel, GazeModel, ObjectModel
from examguard.utils import get_logger

logger = get_logger(__name__)


@dataclass
class ModelSet:
    """Models handed to ``build_detectors``."""
    face: Optional[FaceModel] = None
    objects: Optional[ObjectModel] = None
    gaze: Optional[GazeModel] = None


def load_models(settings: Settings) -> ModelSet:
    """
    Load the models named in settings.

    Args:
        settings: ``face_model`` ("none" or "mediapipe") and
            ``object_model`` ("none" or "yolo")

    Returns:
        ModelSet; unnamed models stay None
    """
    models = ModelSet()

    if settings.face_model == "mediapipe":
        from examguard.models.mediapipe import MediaPipeFaceModel

        face = MediaPipeFaceModel()
        models.face = face
        models.gaze = face
    elif settings.face_model != "none":
        raise ValueError(f"Unknown face model: {settings.face_model}")

    if settings.object_model == "yolo":
        from examguard.models.yolo import YOLOObjectModel

        models.objects = YOLOObjectModel(settings.yolo_model_path, use_gpu=settings.use_gpu)
    elif settings.object_model != "none":
        raise ValueError(f"Unknown object model: {settings.object_model}")

    logger.info(
        f"🧠 Models: face={settings.face_model} object={settings.object_model}"
    )
    return models


__all__ = ["ModelSet", "load_models"]
