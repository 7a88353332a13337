from .logger import get_logger, shutdown_logging

__all__ = ["get_logger", "shutdown_logging"]
