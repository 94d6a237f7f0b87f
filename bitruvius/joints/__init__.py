"""Joints module - editable joint tree and its simulation driver"""

from .joint import Joint, JointConstraints
from .tree import JointTree
from .chain import JointChain

__all__ = ["Joint", "JointConstraints", "JointTree", "JointChain"]
