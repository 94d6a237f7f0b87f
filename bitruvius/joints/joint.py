"""Joint entity for the editable joint tree"""

import math
from dataclasses import dataclass, field, replace
from typing import List, Optional
import numpy as np

from bitruvius.core.math2d import (
    angle_difference, clamp, normalize_angle, vec2, wrap_angle
)


ANGLE_EPSILON = 0.001


@dataclass
class JointConstraints:
    """Signed local angle range, applied only when enabled."""
    enabled: bool = False
    min_angle: float = -math.pi * 0.75
    max_angle: float = math.pi * 0.75

    def apply(self, angle: float) -> float:
        """Clamp a local angle (signed convention) to the range."""
        return clamp(normalize_angle(angle), self.min_angle, self.max_angle)

    def to_dict(self) -> dict:
        return {"enabled": self.enabled, "min_angle": self.min_angle, "max_angle": self.max_angle}

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "JointConstraints":
        data = data or {}
        return cls(
            enabled=bool(data.get("enabled", False)),
            min_angle=float(data.get("min_angle", -math.pi * 0.75)),
            max_angle=float(data.get("max_angle", math.pi * 0.75))
        )


@dataclass
class Joint:
    """
    One joint of a ``JointTree``.

    ``offset`` is the pivot position in the parent's frame (for the root,
    relative to the tree origin). ``length`` runs along local +X to the
    joint's tip. Structural links (``parent``/``children``) are arena ids
    maintained by the owning tree.
    """
    id: int
    name: str
    offset: np.ndarray = field(default_factory=lambda: np.zeros(2))
    length: float = 50.0
    angle: float = 0.0
    target_angle: float = 0.0

    # FK
    fk_enabled: bool = True
    rotation_speed: float = 0.1
    angle_wrapping: bool = True

    # IK
    ik_enabled: bool = True
    ik_weight: float = 1.0
    stiffness: float = 0.5
    damping: float = 0.1

    constraints: JointConstraints = field(default_factory=JointConstraints)
    color: str = "#4fc3f7"

    parent: Optional[int] = None
    children: List[int] = field(default_factory=list)

    def __post_init__(self):
        self.offset = vec2(self.offset)

    def rotate(self, delta: float) -> None:
        """Move the FK target by ``delta``; the angle follows on ``update_fk``."""
        self.target_angle += delta
        if not self.angle_wrapping:
            self.target_angle = normalize_angle(self.target_angle)

    def set_angle(self, angle: float) -> None:
        """Set the FK target angle."""
        self.target_angle = angle
        if not self.angle_wrapping:
            self.target_angle = normalize_angle(self.target_angle)

    def snap_to(self, angle: float) -> None:
        """Set angle and target together, skipping smoothing."""
        self.angle = angle
        self.target_angle = angle

    def update_fk(self, delta_time: float = 0.0) -> None:
        """
        Advance the angle toward ``target_angle`` by ``rotation_speed``.

        The step follows the shortest angular path. Afterwards the angle is
        clamped into the constraint range (signed convention) when
        constraints are enabled, otherwise wrapped into ``[0, 2pi)`` or
        ``(-pi, pi]`` according to ``angle_wrapping``.
        """
        if not self.fk_enabled:
            return

        diff = angle_difference(self.angle, self.target_angle)
        if abs(diff) > ANGLE_EPSILON:
            self.angle += diff * self.rotation_speed

        if self.constraints.enabled:
            self.angle = self.constraints.apply(self.angle)
        elif self.angle_wrapping:
            self.angle = wrap_angle(self.angle)
        else:
            self.angle = normalize_angle(self.angle)

    def reset(self) -> None:
        self.angle = 0.0
        self.target_angle = 0.0

    def clone(self, joint_id: int) -> "Joint":
        """Detached copy under a new id (no parent, no children)."""
        return replace(
            self,
            id=joint_id,
            name=f"{self.name}_clone",
            offset=self.offset.copy(),
            constraints=replace(self.constraints),
            parent=None,
            children=[]
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "offset": [float(self.offset[0]), float(self.offset[1])],
            "length": self.length,
            "angle": self.angle,
            "target_angle": self.target_angle,
            "fk_enabled": self.fk_enabled,
            "rotation_speed": self.rotation_speed,
            "angle_wrapping": self.angle_wrapping,
            "ik_enabled": self.ik_enabled,
            "ik_weight": self.ik_weight,
            "stiffness": self.stiffness,
            "damping": self.damping,
            "constraints": self.constraints.to_dict(),
            "color": self.color,
            "parent": self.parent,
            "children": list(self.children),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Joint":
        return cls(
            id=int(data["id"]),
            name=data.get("name", f"Joint_{data['id']}"),
            offset=data.get("offset", (0.0, 0.0)),
            length=float(data.get("length", 50.0)),
            angle=float(data.get("angle", 0.0)),
            target_angle=float(data.get("target_angle", data.get("angle", 0.0))),
            fk_enabled=bool(data.get("fk_enabled", True)),
            rotation_speed=float(data.get("rotation_speed", 0.1)),
            angle_wrapping=bool(data.get("angle_wrapping", True)),
            ik_enabled=bool(data.get("ik_enabled", True)),
            ik_weight=float(data.get("ik_weight", 1.0)),
            stiffness=float(data.get("stiffness", 0.5)),
            damping=float(data.get("damping", 0.1)),
            constraints=JointConstraints.from_dict(data.get("constraints")),
            color=data.get("color", "#4fc3f7"),
            parent=data.get("parent"),
            children=[int(c) for c in data.get("children", [])]
        )

