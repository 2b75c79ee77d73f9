"""
MediaPipe Face Model

Face counting (FaceDetection) and iris-based gaze estimation (FaceMesh)
behind the FaceModel and GazeModel protocols.
"""

import mediapipe as mp
import numpy as np

from examguard.detectors.base import FaceObservation, GazeObservation
from examguard.utils import get_logger

logger = get_logger(__name__)

# Normalized iris offset beyond which the candidate is looking away
GAZE_X_LIMIT = 0.3
GAZE_Y_LIMIT = 0.25


class MediaPipeFaceModel:
    """MediaPipe wrapper for face presence and gaze."""

    # Key landmark indices
    LEFT_IRIS = [468, 469, 470, 471, 472]
    RIGHT_IRIS = [473, 474, 475, 476, 477]
    LEFT_EYE_OUTER = 33
    LEFT_EYE_INNER = 133
    RIGHT_EYE_INNER = 362
    RIGHT_EYE_OUTER = 263

    def __init__(self, min_confidence: float = 0.5, max_faces: int = 3):
        self.mp_face_mesh = mp.solutions.face_mesh
        self.mp_face_detection = mp.solutions.face_detection

        # Face mesh for iris landmarks
        self.face_mesh = self.mp_face_mesh.FaceMesh(
            static_image_mode=False,
            max_num_faces=max_faces,
            refine_landmarks=True,
            min_detection_confidence=min_confidence,
            min_tracking_confidence=0.5,
        )

        # Face detection for counting
        self.face_detection = self.mp_face_detection.FaceDetection(
            model_selection=1,  # Full range model
            min_detection_confidence=min_confidence,
        )

        logger.info("✅ MediaPipe initialized")

    def detect_faces(self, frame: np.ndarray) -> FaceObservation:
        """
        Count faces in a frame.

        Args:
            frame: RGB image as numpy array

        Returns:
            FaceObservation with one confidence per detected face
        """
        if frame.ndim != 3 or frame.shape[2] != 3:
            return FaceObservation()

        results = self.face_detection.process(frame)
        if not results.detections:
            return FaceObservation()

        return FaceObservation(
            confidences=[float(d.score[0]) if d.score else 0.0 for d in results.detections]
        )

    def estimate_gaze(self, frame: np.ndarray) -> GazeObservation:
        """
        Estimate whether the first face is looking at the screen.

        A frame without a face mesh yields a zero-confidence observation,
        which the gaze detector ignores.
        """
        if frame.ndim != 3 or frame.shape[2] != 3:
            return GazeObservation(on_screen=True, confidence=0.0)

        h, w = frame.shape[:2]
        results = self.face_mesh.process(frame)
        if not results.multi_face_landmarks:
            return GazeObservation(on_screen=True, confidence=0.0)

        gaze_x, gaze_y = self._calculate_gaze(results.multi_face_landmarks[0].landmark, w, h)
        on_screen = abs(gaze_x) <= GAZE_X_LIMIT and abs(gaze_y) <= GAZE_Y_LIMIT

        # Confidence drops as the gaze approaches the boundary
        margin = max(abs(gaze_x) / GAZE_X_LIMIT, abs(gaze_y) / GAZE_Y_LIMIT)
        confidence = float(min(1.0, abs(1.0 - margin) + 0.5))

        return GazeObservation(on_screen=on_screen, confidence=confidence, direction=(gaze_x, gaze_y))

    def _calculate_gaze(self, landmarks, w: int, h: int) -> tuple[float, float]:
        """Gaze direction from iris position relative to the eye corners."""

        def point(i: int) -> np.ndarray:
            return np.array([landmarks[i].x * w, landmarks[i].y * h])

        left_iris = np.mean([point(i) for i in self.LEFT_IRIS], axis=0)
        right_iris = np.mean([point(i) for i in self.RIGHT_IRIS], axis=0)

        left_outer, left_inner = point(self.LEFT_EYE_OUTER), point(self.LEFT_EYE_INNER)
        right_inner, right_outer = point(self.RIGHT_EYE_INNER), point(self.RIGHT_EYE_OUTER)

        left_width = np.linalg.norm(left_inner - left_outer)
        right_width = np.linalg.norm(right_outer - right_inner)
        if left_width == 0 or right_width == 0:
            return 0.0, 0.0

        left_gaze_x = (left_iris[0] - left_outer[0]) / left_width - 0.5
        right_gaze_x = (right_iris[0] - right_inner[0]) / right_width - 0.5

        gaze_x = (left_gaze_x + right_gaze_x) / 2
        gaze_y = (left_iris[1] + right_iris[1]) / 2 / h - 0.5

        return float(gaze_x), float(gaze_y)

    def close(self):
        """Release resources."""
        self.face_mesh.close()
        self.face_detection.close()
