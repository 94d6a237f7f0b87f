"""Core systems - config, logging, timing, math, errors"""

from .config import Config
from .logging import setup_logging, get_logger
from .timing import FrameTimer, FrameClock, FrameData
from .errors import (
    KinematicsError,
    UnknownJointError,
    SingularMatrixError,
    SkeletonDefinitionError,
)

__all__ = [
    "Config", "setup_logging", "get_logger",
    "FrameTimer", "FrameClock", "FrameData",
    "KinematicsError", "UnknownJointError",
    "SingularMatrixError", "SkeletonDefinitionError",
]
