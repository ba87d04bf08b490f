import cv2, numpy as np
from pathlib import Path
from typing import Tuple

from ..pe_types import CameraIntrinsics

def load_calib(path: str) -> Tuple[np.ndarray, np.ndarray, tuple[int,int]]:
    if not Path(path).exists():
        raise FileNotFoundError(f"Calibration not found: {path}")
    fs = cv2.FileStorage(path, cv2.FILE_STORAGE_READ)
    K = fs.getNode("camera_matrix").mat()
    dist = fs.getNode("dist_coeffs").mat()
    w = int(fs.getNode("image_width").real()); h = int(fs.getNode("image_height").real())
    fs.release()
    if K is None:
        raise ValueError(f"camera_matrix missing from calibration file: {path}")
    return K, dist, (w, h)

def load_intrinsics(path: str) -> CameraIntrinsics:
    K, dist, _ = load_calib(path)
    return CameraIntrinsics.from_matrix(K, dist)
