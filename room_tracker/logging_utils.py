import logging

LOG_FORMAT = "%(asctime)s %(levelname)s [%(camera)s] %(message)s"


class CameraNameFilter(logging.Filter):
    """Stamps ``record.camera`` so LOG_FORMAT can show which camera spoke."""

    def __init__(self, camera_name: str):
        super().__init__()
        self.camera_name = camera_name

    def filter(self, record: logging.LogRecord) -> bool:
        record.camera = self.camera_name
        return True


def _camera_handler(handler: logging.Handler, camera_name: str) -> logging.Handler:
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler.addFilter(CameraNameFilter(camera_name))
    return handler


def setup_logger(camera_name: str, level: int = logging.INFO) -> logging.Logger:
    logger = logging.getLogger(f"room_tracker.{camera_name}")
    logger.setLevel(level)
    # repeated sessions in one process reuse the console handler
    if not any(isinstance(h, logging.StreamHandler) and not isinstance(h, logging.FileHandler)
               for h in logger.handlers):
        logger.addHandler(_camera_handler(logging.StreamHandler(), camera_name))
    return logger


def add_file_handler(logger: logging.Logger, camera_name: str, log_path: str) -> logging.Handler:
    """Attach a session log file; the caller removes and closes it at session end."""
    handler = _camera_handler(logging.FileHandler(log_path, encoding="utf-8"), camera_name)
    logger.addHandler(handler)
    return handler
