"""Kinematics module - forward evaluation and chain views"""

from .forward import Hierarchy, WorldTransform, world_transform, world_transforms
from .chain import ChainSpec, IKResult, IKSettings

__all__ = [
    "Hierarchy", "WorldTransform", "world_transform", "world_transforms",
    "ChainSpec", "IKResult", "IKSettings",
]
