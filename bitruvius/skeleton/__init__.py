"""Skeleton module - multi-chain humanoid rig"""

from .definition import ChainDef, JointDef, SkeletonDef, chain_bend_direction, load_skeleton
from .bitruvius_rig import load_bitruvius_rig
from .rig import SkeletonRig

__all__ = [
    "ChainDef", "JointDef", "SkeletonDef", "chain_bend_direction", "load_skeleton",
    "load_bitruvius_rig", "SkeletonRig",
]
