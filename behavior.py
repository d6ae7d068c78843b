"""Camera-based behavioral scoring from face-landmark frames.

Input frames are the output of a face-mesh detector: for each frame, a list
of detected faces, each face a sequence of landmarks in normalized image
coordinates (``(x, y)``, ``(x, y, z)`` or ``{"x": .., "y": ..}``), indexed the
way MediaPipe FaceMesh indexes them. Only frames with exactly one face
contribute to the scores; zero or several faces only change the warning state.
"""
import logging
import math
from dataclasses import dataclass, asdict
from enum import Enum

logger = logging.getLogger(__name__)

# FaceMesh landmark indices
NOSE_TIP = 1
LEFT_EYE_TOP = 159
LEFT_EYE_BOTTOM = 145
RIGHT_EYE_TOP = 386
RIGHT_EYE_BOTTOM = 374

EYE_CONTACT_THRESHOLD = 0.3      # head displacement from frame center, in face widths
MOVEMENT_THRESHOLD = 0.05        # frame-to-frame nose shift, in face widths
EYE_CLOSED_RATIO = 0.02          # eyelid gap / face height
EYE_OPEN_REFERENCE = 0.05        # eyelid gap treated as fully open
MAX_DISPLACEMENT = 1.0
MIN_CLOSED_FRAMES = 2
SMOOTHING = 0.2
CHECK_INTERVAL = 0.1             # ~10 checks per second

EYE_WEIGHT = 0.4
POSITION_WEIGHT = 0.6

PROFESSIONALISM_WEIGHTS = {
    'eyeContact': 0.30,
    'confidence': 0.25,
    'stability': 0.20,
    'facePresence': 0.15,
    'blink': 0.10,
}
NORMAL_BLINKS = (0.5, 3.0)       # blinks per 60 frames


class FaceState(Enum):
    NO_FACE = 'no-face'
    SINGLE_FACE = 'single-face'
    MULTI_FACE = 'multi-face'


WARNINGS = {
    FaceState.NO_FACE: 'No face detected. Please stay in front of the camera.',
    FaceState.MULTI_FACE: 'Multiple faces detected. Only the candidate should be visible.',
    FaceState.SINGLE_FACE: None,
}


@dataclass
class BehaviorReport:
    eyeContact: float
    confidence: float
    engagement: float
    stability: float
    facePresence: float
    blinkRate: float
    professionalism: float

    def to_dict(self):
        return asdict(self)


def _xy(point):
    if isinstance(point, dict):
        return float(point['x']), float(point['y'])
    return float(point[0]), float(point[1])


def blink_score(rate):
    low, high = NORMAL_BLINKS
    if low <= rate <= high:
        return 100.0
    distance = low - rate if rate < low else rate - high
    return max(0.0, 100.0 - distance * 20.0)


class BehaviorAnalyzer:
    """Accumulates per-frame signals for one interview and reports at the end."""

    def __init__(self, check_interval=CHECK_INTERVAL):
        self.check_interval = check_interval
        self.active = False
        self.state = FaceState.NO_FACE
        self._reset()

    def _reset(self):
        self.total_frames = 0
        self.face_frames = 0
        self.eye_contact_frames = 0
        self.movement_count = 0
        self.blinks = 0
        self.closed_run = 0
        self.smoothed_confidence = None
        self._last_nose = None
        self._last_timestamp = None

    @property
    def warning(self):
        return WARNINGS[self.state] if self.active else None

    def start(self):
        self._reset()
        self.active = True
        self.state = FaceState.NO_FACE

    def process(self, faces, timestamp=None):
        """Feed one frame's detected faces. Returns the current FaceState.

        Frames arriving less than ``check_interval`` seconds after the last
        processed one are ignored, as are frames while the analyzer is stopped.
        """
        if not self.active:
            return self.state
        if timestamp is not None and self._last_timestamp is not None:
            if timestamp - self._last_timestamp < self.check_interval:
                return self.state
        if timestamp is not None:
            self._last_timestamp = timestamp

        faces = faces or []
        self.total_frames += 1
        if len(faces) == 0:
            self.state = FaceState.NO_FACE
            self._last_nose = None
            return self.state
        if len(faces) > 1:
            self.state = FaceState.MULTI_FACE
            self._last_nose = None
            return self.state

        self.state = FaceState.SINGLE_FACE
        self._score_face(faces[0])
        return self.state

    def _score_face(self, landmarks):
        points = [_xy(p) for p in landmarks]
        xs = [p[0] for p in points]
        ys = [p[1] for p in points]
        width = max(max(xs) - min(xs), 1e-6)
        height = max(max(ys) - min(ys), 1e-6)

        self.face_frames += 1

        nose_x, nose_y = points[NOSE_TIP]
        displacement = math.hypot((nose_x - 0.5) / width, (nose_y - 0.5) / height)
        if displacement < EYE_CONTACT_THRESHOLD:
            self.eye_contact_frames += 1

        if self._last_nose is not None:
            delta = math.hypot((nose_x - self._last_nose[0]) / width, (nose_y - self._last_nose[1]) / height)
            if delta > MOVEMENT_THRESHOLD:
                self.movement_count += 1
        self._last_nose = (nose_x, nose_y)

        left_gap = abs(points[LEFT_EYE_TOP][1] - points[LEFT_EYE_BOTTOM][1])
        right_gap = abs(points[RIGHT_EYE_TOP][1] - points[RIGHT_EYE_BOTTOM][1])
        openness = (left_gap + right_gap) / 2 / height

        if openness < EYE_CLOSED_RATIO:
            self.closed_run += 1
        else:
            if self.closed_run >= MIN_CLOSED_FRAMES:
                self.blinks += 1
            self.closed_run = 0

        eye_term = min(1.0, openness / EYE_OPEN_REFERENCE) * 100
        position_term = max(0.0, 1 - displacement / MAX_DISPLACEMENT) * 100
        confidence = EYE_WEIGHT * eye_term + POSITION_WEIGHT * position_term
        if self.smoothed_confidence is None:
            self.smoothed_confidence = confidence
        else:
            self.smoothed_confidence += SMOOTHING * (confidence - self.smoothed_confidence)

    def stop(self):
        """End the session. Returns a BehaviorReport, or None if no face was ever seen."""
        was_active = self.active
        self.active = False
        if not was_active or self.face_frames == 0:
            logger.info("Behavior analysis ended without any face frames; no report")
            return None

        eye_contact = self.eye_contact_frames / self.face_frames * 100
        stability = 100 - min(100.0, self.movement_count / self.face_frames * 100)
        face_presence = self.face_frames / self.total_frames * 100
        blink_rate = self.blinks / self.face_frames * 60
        confidence = self.smoothed_confidence or 0.0

        w = PROFESSIONALISM_WEIGHTS
        professionalism = (
            w['eyeContact'] * eye_contact
            + w['confidence'] * confidence
            + w['stability'] * stability
            + w['facePresence'] * face_presence
            + w['blink'] * blink_score(blink_rate)
        )
        return BehaviorReport(
            eyeContact=round(eye_contact, 1),
            confidence=round(confidence, 1),
            engagement=round((eye_contact + face_presence) / 2, 1),
            stability=round(stability, 1),
            facePresence=round(face_presence, 1),
            blinkRate=round(blink_rate, 1),
            professionalism=round(professionalism, 1),
        )


def analyze_frames(frames, check_interval=CHECK_INTERVAL):
    """Run a whole recorded session through a fresh analyzer.

    ``frames`` is a list of ``{"faces": [...], "timestamp": <seconds>}`` dicts
    (the timestamp is optional) or plain lists of faces.
    """
    analyzer = BehaviorAnalyzer(check_interval=check_interval)
    analyzer.start()
    for frame in frames or []:
        if isinstance(frame, dict):
            analyzer.process(frame.get('faces') or [], frame.get('timestamp'))
        else:
            analyzer.process(frame)
    return analyzer.stop()
