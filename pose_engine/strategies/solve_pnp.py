import logging
from typing import Optional

import cv2, numpy as np

from ..pe_types import CameraIntrinsics, DetectedMarker, Point3D, PoseEstimate
from ..services.registry import MarkerRegistry
from ..transforms import marker_pose_to_world
from .base import PoseSolver, is_degenerate

logger = logging.getLogger(__name__)

PERSPECTIVE_CONFIDENCE = 0.95
# mean corner distance, in pixels, above which a solution is not trusted
MAX_REPROJECTION_ERROR_PX = 3.0


def square_object_points(edge_length_m: float) -> np.ndarray:
    """Marker corners in its own frame, ArUco order: TL, TR, BR, BL."""
    h = edge_length_m / 2.0
    return np.array(
        [
            [-h,  h, 0.0],
            [ h,  h, 0.0],
            [ h, -h, 0.0],
            [-h, -h, 0.0],
        ],
        dtype=np.float64,
    )


def reprojection_error(object_points, image_points, rvec, tvec, intrinsics: CameraIntrinsics) -> float:
    """Mean pixel distance between the observed corners and the solution's reprojection."""
    projected, _ = cv2.projectPoints(
        object_points, rvec, tvec, intrinsics.camera_matrix(), intrinsics.dist_array()
    )
    return float(np.mean(np.linalg.norm(projected.reshape(-1, 2) - image_points, axis=1)))


def pnp_solutions(object_points, image_points, intrinsics: CameraIntrinsics) -> list:
    """
    Candidate (rvec, tvec) pairs for one marker.

    IPPE_SQUARE returns both planar ambiguity branches; on fronto-parallel views
    both can be wrong, so the iterative solve is always added as well.
    """
    K, dist = intrinsics.camera_matrix(), intrinsics.dist_array()
    out = []
    if hasattr(cv2, "SOLVEPNP_IPPE_SQUARE"):
        try:
            n, rvecs, tvecs, _err = cv2.solvePnPGeneric(
                object_points, image_points, K, dist, flags=cv2.SOLVEPNP_IPPE_SQUARE
            )
            out.extend(zip(rvecs[:n], tvecs[:n]))
        except cv2.error as e:
            logger.debug("IPPE_SQUARE solve raised: %s", e)
    try:
        ok, rvec, tvec = cv2.solvePnP(
            object_points, image_points, K, dist, flags=cv2.SOLVEPNP_ITERATIVE
        )
        if ok:
            out.append((rvec, tvec))
    except cv2.error as e:
        logger.debug("iterative solve raised: %s", e)
    return out


class PerspectiveSolver(PoseSolver):
    """
    Strategy: full perspective pose of the marker square via OpenCV PnP.

    Among the candidate solutions the one that reprojects best onto the
    detected corners wins; when none is usable the marker is handed to
    ``fallback`` (if any).
    """

    confidence = PERSPECTIVE_CONFIDENCE

    def __init__(
        self,
        registry: MarkerRegistry,
        fallback: Optional[PoseSolver] = None,
        max_reprojection_error_px: float = MAX_REPROJECTION_ERROR_PX,
    ):
        super().__init__(registry)
        self.fallback = fallback
        self.max_reprojection_error_px = max_reprojection_error_px

    def solve_pnp(self, marker: DetectedMarker, edge_length_m: float, intrinsics: CameraIntrinsics):
        """Return (rvec, tvec) of the marker in camera space, or None."""
        obj = square_object_points(edge_length_m)
        img = marker.corner_array()

        best, best_err = None, float("inf")
        for rvec, tvec in pnp_solutions(obj, img, intrinsics):
            if rvec is None or tvec is None:
                continue
            if not (np.all(np.isfinite(rvec)) and np.all(np.isfinite(tvec))):
                continue
            # marker must sit in front of the camera
            if float(np.asarray(tvec).reshape(3)[2]) <= 0.0:
                continue
            err = reprojection_error(obj, img, rvec, tvec, intrinsics)
            if err < best_err:
                best, best_err = (rvec, tvec), err

        if best is None:
            return None
        if best_err > self.max_reprojection_error_px:
            logger.debug(
                "marker %d: best PnP solution reprojects %.1fpx off, rejected",
                marker.marker_id, best_err,
            )
            return None
        return best

    def solve(self, marker: DetectedMarker, intrinsics: CameraIntrinsics) -> Optional[PoseEstimate]:
        entry = self.registry.lookup(marker.marker_id)
        if entry is None or is_degenerate(marker):
            return None

        result = self.solve_pnp(marker, entry.edge_length_m, intrinsics)
        if result is None:
            if self.fallback is None:
                return None
            logger.debug("perspective solve failed for marker %d, using fallback", marker.marker_id)
            return self.fallback.solve(marker, intrinsics)

        rvec, tvec = result
        position, heading = marker_pose_to_world(rvec, tvec, entry.position.as_array())
        return PoseEstimate(Point3D.from_array(position), heading, self.confidence)
