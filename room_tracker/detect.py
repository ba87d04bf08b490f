import logging

import cv2
import numpy as np

from pose_engine.pe_types import DetectedMarker, Frame

logger = logging.getLogger(__name__)

_DICTS = {
    "4x4_50": "DICT_4X4_50",
    "4x4_100": "DICT_4X4_100",
    "4x4_250": "DICT_4X4_250",
    "5x5_50": "DICT_5X5_50",
    "5x5_100": "DICT_5X5_100",
    "5x5_250": "DICT_5X5_250",
    "6x6_50": "DICT_6X6_50",
    "6x6_100": "DICT_6X6_100",
    "6x6_250": "DICT_6X6_250",
    "7x7_50": "DICT_7X7_50",
    "7x7_100": "DICT_7X7_100",
    "7x7_250": "DICT_7X7_250",
}

MIN_MARKER_AREA_PX = 400.0  # 20x20 bounding box
MIN_ASPECT_RATIO = 0.5
MAX_ASPECT_RATIO = 2.0


def get_dict(name: str):
    """ArUco dictionary by name; accepts "6x6_250" or "DICT_6X6_250"."""
    key = (name or "").strip()
    if key.upper().startswith("DICT_"):
        key = key[5:]
    attr = _DICTS.get(key.lower())
    if attr is None:
        raise ValueError(f"unknown ArUco dictionary: {name!r}")
    code = getattr(cv2.aruco, attr)

    if hasattr(cv2.aruco, "getPredefinedDictionary"):
        return cv2.aruco.getPredefinedDictionary(code)
    return cv2.aruco.Dictionary_get(code)


def preprocess(image: np.ndarray) -> np.ndarray:
    """Grayscale, blend in 30% histogram equalization, then a light 3x3 blur."""
    gray = cv2.cvtColor(image, cv2.COLOR_BGR2GRAY) if image.ndim == 3 else image
    equalized = cv2.equalizeHist(gray)
    blended = cv2.addWeighted(gray, 0.7, equalized, 0.3, 0.0)
    return cv2.GaussianBlur(blended, (3, 3), 0)


def is_convex(corners: np.ndarray) -> bool:
    """All turns of the closed quad go the same way (collinear turns ignored)."""
    edges = np.roll(corners, -1, axis=0) - corners
    nxt = np.roll(edges, -1, axis=0)
    cross = edges[:, 0] * nxt[:, 1] - edges[:, 1] * nxt[:, 0]
    signs = np.sign(cross[cross != 0])
    return bool(np.all(signs == signs[0])) if signs.size else False


def rejection_reason(marker: DetectedMarker, min_area_px: float = MIN_MARKER_AREA_PX):
    """None for a plausible marker quad, otherwise a short reason."""
    pts = marker.corner_array()
    width, height = np.ptp(pts[:, 0]), np.ptp(pts[:, 1])
    if width * height < min_area_px:
        return f"too small ({width * height:.0f}px2)"
    aspect = width / height
    if not MIN_ASPECT_RATIO <= aspect <= MAX_ASPECT_RATIO:
        return f"aspect ratio {aspect:.2f}"
    if not is_convex(pts):
        return "not convex"
    return None


def _detector_parameters():
    if hasattr(cv2.aruco, "DetectorParameters_create"):
        p = cv2.aruco.DetectorParameters_create()
    else:
        p = cv2.aruco.DetectorParameters()
    p.adaptiveThreshWinSizeMin = 3
    p.adaptiveThreshWinSizeMax = 23
    p.adaptiveThreshWinSizeStep = 10
    p.adaptiveThreshConstant = 7.0
    # sub-pixel corners matter for the perspective solve
    p.cornerRefinementMethod = cv2.aruco.CORNER_REFINE_SUBPIX
    p.cornerRefinementWinSize = 5
    p.cornerRefinementMaxIterations = 30
    p.cornerRefinementMinAccuracy = 0.1
    p.minMarkerPerimeterRate = 0.03
    p.maxMarkerPerimeterRate = 4.0
    p.polygonalApproxAccuracyRate = 0.03
    p.minCornerDistanceRate = 0.05
    p.minDistanceToBorder = 3
    p.maxErroneousBitsInBorderRate = 0.35
    p.errorCorrectionRate = 0.6
    return p


class ArucoDetector:
    """Frame -> list[DetectedMarker]: preprocess, run OpenCV ArUco, drop implausible quads."""

    def __init__(
        self,
        dict_name: str = "6x6_250",
        enhance: bool = True,
        min_area_px: float = MIN_MARKER_AREA_PX,
    ):
        self.dictionary = get_dict(dict_name)
        self.params = _detector_parameters()
        self.enhance = enhance
        self.min_area_px = min_area_px
        # OpenCV >= 4.7 object API; older builds only have the free function
        self._detector = None
        if hasattr(cv2.aruco, "ArucoDetector"):
            self._detector = cv2.aruco.ArucoDetector(self.dictionary, self.params)

    def raw_detect(self, image: np.ndarray) -> list[DetectedMarker]:
        if self._detector is not None:
            corners, ids, _rejected = self._detector.detectMarkers(image)
        else:
            corners, ids, _rejected = cv2.aruco.detectMarkers(
                image, self.dictionary, parameters=self.params
            )
        if ids is None:
            return []
        return [DetectedMarker.from_array(int(mid), c) for mid, c in zip(ids.flatten(), corners)]

    def detect(self, f: Frame) -> list[DetectedMarker]:
        image = preprocess(f.image) if self.enhance else f.image
        kept = []
        for marker in self.raw_detect(image):
            reason = rejection_reason(marker, self.min_area_px)
            if reason is None:
                kept.append(marker)
            else:
                logger.debug("frame=%d marker=%d rejected: %s", f.idx, marker.marker_id, reason)
        return kept
