"""Flat chain view shared by the IK solvers.

A chain is an ordered run of parent-linked joints. Its world points are the
pivots of the solvable joints followed by the effector point, which sits at
``tip`` in the frame of the last solvable joint:

    P0 (joint 0) -- P1 (joint 1) -- ... -- Pn-1 (joint n-1) -- Pn (effector)
"""

import math
from dataclasses import dataclass, field, fields
from typing import Dict, FrozenSet, List, Mapping, Optional, Sequence, Tuple
import numpy as np

from bitruvius.core.errors import SkeletonDefinitionError
from bitruvius.core.math2d import (
    PointLike, clamp, distance, heading, normalize_angle, vec2
)
from .forward import Hierarchy, JointId, world_transform


Angles = Mapping[JointId, float]


@dataclass
class IKSettings:
    """Tuning for every solver. Angles in radians, distances in world units."""
    iterations: int = 10
    threshold: float = 0.1
    strength: float = 1.0
    # Constrained FABRIK
    max_iterations: int = 50
    tolerance: float = 0.01
    soft_reach_ratio: float = 0.12
    bend_angle: float = math.radians(20.0)
    perturbation_scale: float = 3.0
    stagnation_start: int = 10
    stagnation_interval: int = 5
    # Jacobian transpose
    jacobian_iterations: int = 50
    epsilon: float = 0.01
    step_size: float = 0.5
    damping: float = 0.1
    max_step: float = 0.35

    @classmethod
    def from_config(cls, ik_config: Optional[dict]) -> "IKSettings":
        """Build settings from the ``ik`` config section (unknown keys ignored)."""
        ik_config = dict(ik_config or {})
        if "bend_angle_deg" in ik_config:
            ik_config["bend_angle"] = math.radians(float(ik_config.pop("bend_angle_deg")))
        if "ik_strength" in ik_config:
            ik_config["strength"] = ik_config.pop("ik_strength")

        known = {f.name: f.type for f in fields(cls)}
        values = {}
        for key, value in ik_config.items():
            if key in known:
                values[key] = int(value) if known[key] in (int, "int") else float(value)
        return cls(**values)


@dataclass
class IKResult:
    """Outcome of one solver invocation."""
    angles: Dict[JointId, float]
    error: float  # Effector distance to the (effective) target after the solve
    iterations: int = 0
    converged: bool = False
    error_history: List[float] = field(default_factory=list)
    effective_target: Optional[np.ndarray] = None

    @classmethod
    def unchanged(cls, angles: Angles, error: float = math.inf) -> "IKResult":
        return cls(angles=dict(angles), error=error)


@dataclass(frozen=True, eq=False)
class ChainSpec:
    """
    Solvable view of a joint chain.

    Attributes:
        hierarchy: Hierarchy the joints belong to
        joint_ids: Solvable joints, proximal to distal; each is the parent of the next
        tip: Effector offset in the frame of the last solvable joint
        origin: World position of the hierarchy root
        limits: Optional (min, max) local angle per joint
        locked: Joints the solvers must not rotate
        name: Chain identifier, used for logging and bend direction
        stretch_ratio: Max reach factor for soft reach damping
        curve_strength: Bend bias magnitude
        bend_direction: +1 / -1 to seed a bend, None for no bias
    """
    hierarchy: Hierarchy
    joint_ids: Tuple[JointId, ...]
    tip: np.ndarray
    origin: np.ndarray = field(default_factory=lambda: np.zeros(2))
    limits: Mapping[JointId, Tuple[float, float]] = field(default_factory=dict)
    locked: FrozenSet[JointId] = frozenset()
    name: str = ""
    stretch_ratio: float = 1.1
    curve_strength: float = 0.5
    bend_direction: Optional[int] = None

    def __post_init__(self):
        object.__setattr__(self, "joint_ids", tuple(self.joint_ids))
        object.__setattr__(self, "tip", vec2(self.tip))
        object.__setattr__(self, "origin", vec2(self.origin))

        for jid in self.joint_ids:
            self.hierarchy.parent_of(jid)
        for prev, jid in zip(self.joint_ids, self.joint_ids[1:]):
            if self.hierarchy.parent_of(jid) != prev:
                raise SkeletonDefinitionError(
                    f"Chain {self.name!r}: {jid!r} is not a child of {prev!r}"
                )

        offsets = [self.hierarchy.offset_of(jid) for jid in self.joint_ids[1:]]
        offsets.append(self.tip)
        object.__setattr__(self, "_segments", [vec2(o) for o in offsets])

    @property
    def size(self) -> int:
        """Number of solvable joints."""
        return len(self.joint_ids)

    @property
    def is_solvable(self) -> bool:
        return self.size >= 1

    @property
    def lengths(self) -> np.ndarray:
        """Segment lengths P[i] -> P[i+1]."""
        return np.array([math.hypot(s[0], s[1]) for s in self._segments])

    @property
    def rest_angles(self) -> List[float]:
        """Direction of each segment in its joint's local frame."""
        return [heading(s) for s in self._segments]

    @property
    def total_length(self) -> float:
        return float(np.sum(self.lengths))

    def base_angle(self, angles: Angles) -> float:
        """Accumulated orientation of the first joint's parent frame."""
        return world_transform(self.hierarchy, self.joint_ids[0], angles, self.origin).parent_angle

    def points(self, angles: Angles) -> np.ndarray:
        """World points P0..Pn, shape (n + 1, 2)."""
        first = world_transform(self.hierarchy, self.joint_ids[0], angles, self.origin)
        points = np.zeros((self.size + 1, 2))
        points[0] = first.position
        frame = first.parent_angle
        for i, jid in enumerate(self.joint_ids):
            frame += angles.get(jid, 0.0)
            sx, sy = self._segments[i]
            c = math.cos(frame)
            s = math.sin(frame)
            points[i + 1] = points[i] + (sx * c - sy * s, sx * s + sy * c)
        return points

    def effector(self, angles: Angles) -> np.ndarray:
        return self.points(angles)[-1]

    def error(self, angles: Angles, target: PointLike) -> float:
        return distance(self.effector(angles), target)

    def clamp_angle(self, joint_id: JointId, angle: float) -> float:
        """Normalize and clamp a local angle to the joint's limits."""
        angle = normalize_angle(angle)
        limit = self.limits.get(joint_id)
        if limit is not None:
            angle = clamp(angle, limit[0], limit[1])
        return angle

    def angles_from_points(
        self,
        points: Sequence[np.ndarray],
        angles: Angles
    ) -> Dict[JointId, float]:
        """
        Convert solved world points back into local joint angles.

        Each joint's angle is the bone direction minus the bone's rest
        direction minus the parent frame's orientation, then clamped.
        Locked joints and zero-length bones keep their current angle.

        Returns:
            New angle mapping (input is not modified)
        """
        result = dict(angles)
        rest = self.rest_angles
        parent_frame = self.base_angle(angles)

        for i, jid in enumerate(self.joint_ids):
            bone = np.asarray(points[i + 1]) - np.asarray(points[i])
            current = angles.get(jid, 0.0)
            if jid in self.locked or math.hypot(bone[0], bone[1]) < 1e-9:
                local = current
            else:
                local = self.clamp_angle(jid, heading(bone) - rest[i] - parent_frame)
            result[jid] = local
            parent_frame += local

        return result
