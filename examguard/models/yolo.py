"""
YOLO11 Object Model

Uses Ultralytics YOLO11 to label objects in the candidate's camera frame.
https://docs.ultralytics.com/models/yolo11/
"""

from pathlib import Path
from typing import Optional

import numpy as np
from ultralytics import YOLO

from examguard.detectors.base import ObjectObservation
from examguard.utils import get_logger

logger = get_logger(__name__)

# COCO class IDs relevant to an exam room
PERSON_CLASS = 0
LAPTOP_CLASS = 63
PHONE_CLASS = 67
BOOK_CLASS = 73
TV_CLASS = 62


class YOLOObjectModel:
    """YOLO11 wrapper implementing the ObjectModel protocol."""

    # Classes we want to detect
    TARGET_CLASSES = {
        PERSON_CLASS: "person",
        TV_CLASS: "tv",
        LAPTOP_CLASS: "laptop",
        PHONE_CLASS: "cell phone",
        BOOK_CLASS: "book",
    }

    def __init__(self, model_path: str = "yolo11n.pt", use_gpu: bool = False, min_confidence: float = 0.25):
        """
        Initialize YOLO11 detector.

        Args:
            model_path: Path to model weights, downloaded by name if missing
            use_gpu: Move the model to CUDA
            min_confidence: Inference confidence floor; detectors apply their own threshold
        """
        path = model_path
        if not Path(path).exists():
            logger.info(f"📥 Downloading YOLO11 model: {path}")

        self.model = YOLO(path)
        self.min_confidence = min_confidence

        if use_gpu:
            self.model.to("cuda")

        logger.info(f"✅ YOLO11 loaded: {path}")

    def detect_objects(self, frame: np.ndarray) -> list[ObjectObservation]:
        """
        Run detection on a frame.

        Args:
            frame: BGR image as numpy array

        Returns:
            One observation per box of a target class
        """
        results = self.model(
            frame,
            conf=self.min_confidence,
            classes=list(self.TARGET_CLASSES.keys()),
            verbose=False,
        )
        return self._parse(results)

    def _parse(self, results) -> list[ObjectObservation]:
        observations: list[ObjectObservation] = []

        if not results:
            return observations

        boxes = results[0].boxes
        if boxes is None:
            return observations

        for i in range(len(boxes)):
            cls = int(boxes.cls[i])
            observations.append(
                ObjectObservation(
                    label=self.TARGET_CLASSES.get(cls, "unknown"),
                    confidence=float(boxes.conf[i]),
                    box=_to_list(boxes.xyxy[i]),
                )
            )

        return observations


def _to_list(xyxy) -> Optional[list[float]]:
    if hasattr(xyxy, "cpu"):
        xyxy = xyxy.cpu().numpy()
    return [float(v) for v in np.asarray(xyxy).tolist()]
