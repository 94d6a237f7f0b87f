"""Forward Kinematics Evaluator - joint hierarchy to world transforms"""

import math
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Hashable, List, Mapping, Optional
import numpy as np

from bitruvius.core.errors import UnknownJointError, SkeletonDefinitionError
from bitruvius.core.math2d import PointLike, affine, normalize_angle, vec2


JointId = Hashable


@dataclass(frozen=True)
class WorldTransform:
    """World placement of a joint pivot."""
    position: np.ndarray  # (2,) world position of the pivot
    angle: float  # Accumulated orientation including the joint's own angle
    parent_angle: float  # Accumulated orientation before the joint's own angle

    @property
    def x(self) -> float:
        return float(self.position[0])

    @property
    def y(self) -> float:
        return float(self.position[1])

    @property
    def matrix(self) -> np.ndarray:
        """3x3 local-to-world transform of the joint frame."""
        return affine(self.angle, self.position)

    def to_dict(self) -> dict:
        return {
            "position": [self.x, self.y],
            "angle": self.angle,
            "parent_angle": self.parent_angle,
        }


@dataclass(frozen=True, eq=False)
class Hierarchy:
    """
    Parent links and pivot offsets of a joint tree.

    ``sentinels`` are structural joints (e.g. a skeleton's ``root``) whose
    offset and angle are ignored by the evaluator.
    """
    parents: Mapping[JointId, Optional[JointId]]
    offsets: Mapping[JointId, np.ndarray]
    sentinels: FrozenSet[JointId] = frozenset()
    _children: Dict[JointId, List[JointId]] = field(default_factory=dict, init=False, repr=False)

    def __post_init__(self):
        children: Dict[JointId, List[JointId]] = {jid: [] for jid in self.parents}
        for jid, parent in self.parents.items():
            if parent is None:
                continue
            if parent not in children:
                raise SkeletonDefinitionError(f"Joint {jid!r} has unknown parent {parent!r}")
            children[parent].append(jid)
        object.__setattr__(self, "_children", children)

    def __contains__(self, joint_id: JointId) -> bool:
        return joint_id in self.parents

    def __len__(self) -> int:
        return len(self.parents)

    def parent_of(self, joint_id: JointId) -> Optional[JointId]:
        try:
            return self.parents[joint_id]
        except KeyError:
            raise UnknownJointError(joint_id) from None

    def offset_of(self, joint_id: JointId) -> np.ndarray:
        try:
            return self.offsets[joint_id]
        except KeyError:
            raise UnknownJointError(joint_id) from None

    def children_of(self, joint_id: JointId) -> List[JointId]:
        if joint_id not in self._children:
            raise UnknownJointError(joint_id)
        return list(self._children[joint_id])

    @property
    def roots(self) -> List[JointId]:
        return [jid for jid, parent in self.parents.items() if parent is None]

    def path_to(self, joint_id: JointId) -> List[JointId]:
        """Ancestor path from the hierarchy root down to ``joint_id`` (inclusive)."""
        path = []
        current = joint_id
        while current is not None:
            if len(path) > len(self.parents):
                raise SkeletonDefinitionError(f"Cycle detected above joint {joint_id!r}")
            path.append(current)
            current = self.parent_of(current)
        path.reverse()
        return path

    def topological_order(self) -> List[JointId]:
        """Every joint listed after its parent (depth-first, declaration order)."""
        order = []
        stack = list(reversed(self.roots))
        while stack:
            jid = stack.pop()
            order.append(jid)
            stack.extend(reversed(self._children[jid]))

        if len(order) != len(self.parents):
            missing = sorted(str(j) for j in set(self.parents) - set(order))
            raise SkeletonDefinitionError(f"Joints unreachable from any root: {missing}")
        return order


def world_transform(
    hierarchy: Hierarchy,
    joint_id: JointId,
    angles: Mapping[JointId, float],
    origin: PointLike = (0.0, 0.0)
) -> WorldTransform:
    """
    Compute the world transform of a single joint.

    Walks the ancestor path from the root, rotating each pivot offset by the
    orientation accumulated so far and then adding the joint's own angle.

    Args:
        hierarchy: Joint hierarchy
        joint_id: Joint to evaluate (any joint, not only leaves)
        angles: Local joint angles in radians; missing joints count as 0
        origin: World position of the hierarchy root

    Returns:
        WorldTransform of the joint pivot

    Raises:
        UnknownJointError: if ``joint_id`` is not in the hierarchy
    """
    x = float(origin[0])
    y = float(origin[1])
    accumulated = 0.0
    parent_accumulated = 0.0

    for jid in hierarchy.path_to(joint_id):
        if jid in hierarchy.sentinels:
            continue
        ox, oy = hierarchy.offsets[jid]
        c = math.cos(accumulated)
        s = math.sin(accumulated)
        x += ox * c - oy * s
        y += ox * s + oy * c
        parent_accumulated = accumulated
        accumulated += angles.get(jid, 0.0)

    return WorldTransform(
        position=np.array([x, y]),
        angle=normalize_angle(accumulated),
        parent_angle=normalize_angle(parent_accumulated)
    )


def world_transforms(
    hierarchy: Hierarchy,
    angles: Mapping[JointId, float],
    origin: PointLike = (0.0, 0.0)
) -> Dict[JointId, WorldTransform]:
    """Evaluate every joint once, parents before children."""
    origin = vec2(origin)
    result: Dict[JointId, WorldTransform] = {}

    for jid in hierarchy.topological_order():
        parent = hierarchy.parents[jid]
        if parent is None:
            base_position = origin
            base_angle = 0.0
        else:
            base_position = result[parent].position
            base_angle = result[parent].angle

        if jid in hierarchy.sentinels:
            result[jid] = WorldTransform(base_position.copy(), base_angle, base_angle)
            continue

        ox, oy = hierarchy.offsets[jid]
        c = math.cos(base_angle)
        s = math.sin(base_angle)
        position = base_position + np.array([ox * c - oy * s, ox * s + oy * c])
        result[jid] = WorldTransform(
            position=position,
            angle=normalize_angle(base_angle + angles.get(jid, 0.0)),
            parent_angle=base_angle
        )

    return result
