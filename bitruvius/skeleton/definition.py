"""Skeleton Definition - immutable joint hierarchy, limits and IK chains

Definitions are authored as plain nested dicts (or YAML files) with pivots in
world units and limits/poses in degrees:

    joints:
      root:  {parent: null, pivot: [0, 0]}
      torso: {parent: root, pivot: [0, -58], label: torso, color: "#4ECDC4"}
    limits:
      l_elbow: {min: 0, max: 150}
    chains:
      l_arm_chain: {joints: [l_shoulder, l_elbow, l_wrist], effector: l_wrist,
                    priority: 1, stretch_ratio: 1.1, curve_strength: 0.5}
    poses:
      default: {l_elbow: 30}
    initial_pose: default

On load, degrees are converted to radians.
"""

import math
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Tuple, Union
import yaml

from bitruvius.core.errors import SkeletonDefinitionError, UnknownJointError
from bitruvius.core.math2d import PointLike, clamp, normalize_angle, vec2
from bitruvius.kinematics.chain import ChainSpec
from bitruvius.kinematics.forward import Hierarchy


@dataclass(frozen=True)
class JointDef:
    """Static description of one joint."""
    id: str
    parent: Optional[str]
    pivot: Tuple[float, float]  # Offset from the parent pivot, in the parent's frame
    label: str = ""
    color: str = "#FFFFFF"
    limits: Optional[Tuple[float, float]] = None  # (min, max) radians


@dataclass(frozen=True)
class ChainDef:
    """Named IK chain: joints from proximal joint to effector."""
    id: str
    joints: Tuple[str, ...]
    effector: str
    priority: int = 0
    stretch_ratio: float = 1.1
    curve_strength: float = 0.5
    label: str = ""

    @property
    def bend_direction(self) -> Optional[int]:
        return chain_bend_direction(self.id)


def chain_bend_direction(chain_id: str) -> Optional[int]:
    """
    Preferred bend side for limb chains.

    Returns +1 for right-prefixed arm/leg chains, -1 for other arm/leg
    chains and None for chains that get no bend bias.
    """
    name = chain_id.lower()
    if "arm" not in name and "leg" not in name:
        return None
    if name.startswith(("r_", "right")):
        return 1
    return -1


@dataclass(frozen=True, eq=False)
class SkeletonDef:
    """
    Immutable skeleton: joints, chains, limits and named poses.

    Joints with no parent act as sentinels: their pivot and angle are ignored
    and the rig's origin is the world position of everything below them.
    """
    joints: Mapping[str, JointDef]
    chains: Mapping[str, ChainDef] = field(default_factory=dict)
    poses: Mapping[str, Mapping[str, float]] = field(default_factory=dict)
    initial_rotations: Mapping[str, float] = field(default_factory=dict)
    priority_order: Tuple[str, ...] = ()
    name: str = "skeleton"

    def __post_init__(self):
        object.__setattr__(self, "joints", MappingProxyType(dict(self.joints)))
        object.__setattr__(self, "chains", MappingProxyType(dict(self.chains)))
        object.__setattr__(self, "poses", MappingProxyType(
            {k: MappingProxyType(dict(v)) for k, v in self.poses.items()}
        ))
        object.__setattr__(self, "initial_rotations", MappingProxyType(dict(self.initial_rotations)))
        object.__setattr__(self, "priority_order", tuple(self.priority_order))

        hierarchy = Hierarchy(
            parents={jid: j.parent for jid, j in self.joints.items()},
            offsets={jid: vec2(j.pivot) for jid, j in self.joints.items()},
            sentinels=frozenset(jid for jid, j in self.joints.items() if j.parent is None)
        )
        object.__setattr__(self, "_hierarchy", hierarchy)
        object.__setattr__(self, "_order", tuple(hierarchy.topological_order()))
        self._validate()

    def _validate(self) -> None:
        for joint in self.joints.values():
            if joint.limits is not None and joint.limits[0] > joint.limits[1]:
                raise SkeletonDefinitionError(
                    f"Joint {joint.id!r} has min limit above max limit"
                )

        for chain in self.chains.values():
            if not chain.joints:
                raise SkeletonDefinitionError(f"Chain {chain.id!r} has no joints")
            for jid in chain.joints:
                if jid not in self.joints:
                    raise SkeletonDefinitionError(f"Chain {chain.id!r} references unknown joint {jid!r}")
            for prev, jid in zip(chain.joints, chain.joints[1:]):
                if self.joints[jid].parent != prev:
                    raise SkeletonDefinitionError(
                        f"Chain {chain.id!r}: {jid!r} is not a child of {prev!r}"
                    )
            if chain.effector != chain.joints[-1]:
                raise SkeletonDefinitionError(
                    f"Chain {chain.id!r}: effector {chain.effector!r} must be its last joint"
                )

        for name, pose in self.poses.items():
            for jid in pose:
                if jid not in self.joints:
                    raise SkeletonDefinitionError(f"Pose {name!r} references unknown joint {jid!r}")

    @property
    def hierarchy(self) -> Hierarchy:
        return self._hierarchy

    @property
    def order(self) -> Tuple[str, ...]:
        """Topological order: every joint after its parent."""
        return self._order

    @property
    def limits(self) -> Dict[str, Tuple[float, float]]:
        return {jid: j.limits for jid, j in self.joints.items() if j.limits is not None}

    def joint(self, joint_id: str) -> JointDef:
        try:
            return self.joints[joint_id]
        except KeyError:
            raise UnknownJointError(joint_id) from None

    def chain(self, chain_id: str) -> ChainDef:
        try:
            return self.chains[chain_id]
        except KeyError:
            raise UnknownJointError(chain_id) from None

    def children_of(self, joint_id: str) -> List[str]:
        return self._hierarchy.children_of(joint_id)

    def pose(self, name: str) -> Dict[str, float]:
        """Named pose as radians, every non-sentinel joint present."""
        if name not in self.poses:
            raise KeyError(f"Unknown pose: {name!r}")
        rotations = {jid: 0.0 for jid in self._order if jid not in self._hierarchy.sentinels}
        rotations.update(self.poses[name])
        return rotations

    def clamp_rotation(self, joint_id: str, angle: float) -> float:
        """Normalize a local angle and clamp it to the joint's limits."""
        limits = self.joint(joint_id).limits
        angle = normalize_angle(angle)
        if limits is not None:
            angle = clamp(angle, limits[0], limits[1])
        return angle

    def solve_order(self) -> List[str]:
        """Chain ids by priority (low first); ties follow ``priority_order`` then declaration."""
        declared = list(self.chains)
        rank = {cid: i for i, cid in enumerate(self.priority_order)}
        return sorted(
            declared,
            key=lambda cid: (self.chains[cid].priority, rank.get(cid, len(rank)), declared.index(cid))
        )

    def chain_spec(
        self,
        chain_id: str,
        origin: PointLike = (0.0, 0.0),
        stretch_ratio: Optional[float] = None,
        curve_strength: Optional[float] = None
    ) -> Optional[ChainSpec]:
        """
        Solvable view of a chain, or None for chains shorter than two joints.

        The effector is the last joint's pivot, so every joint but the last
        is solvable.
        """
        chain = self.chain(chain_id)
        if len(chain.joints) < 2:
            return None

        solvable = chain.joints[:-1]
        return ChainSpec(
            hierarchy=self._hierarchy,
            joint_ids=solvable,
            tip=self.joints[chain.effector].pivot,
            origin=vec2(origin),
            limits={jid: self.joints[jid].limits for jid in solvable if self.joints[jid].limits is not None},
            name=chain.id,
            stretch_ratio=chain.stretch_ratio if stretch_ratio is None else stretch_ratio,
            curve_strength=chain.curve_strength if curve_strength is None else curve_strength,
            bend_direction=chain.bend_direction
        )

    @classmethod
    def from_dict(cls, data: Mapping, name: str = "skeleton") -> "SkeletonDef":
        """Build a definition from authored data (limits and poses in degrees)."""
        raw_joints = data.get("joints") or {}
        if not raw_joints:
            raise SkeletonDefinitionError("Skeleton definition has no joints")

        raw_limits = data.get("limits") or {}
        for jid in raw_limits:
            if jid not in raw_joints:
                raise SkeletonDefinitionError(f"Limits reference unknown joint {jid!r}")

        joints = {}
        for jid, spec in raw_joints.items():
            limit = raw_limits.get(jid) or spec.get("limits")
            joints[jid] = JointDef(
                id=jid,
                parent=spec.get("parent"),
                pivot=tuple(float(v) for v in spec.get("pivot", (0.0, 0.0))),
                label=spec.get("label", jid),
                color=spec.get("color", "#FFFFFF"),
                limits=_limits_from_degrees(limit)
            )

        chains = {}
        for cid, spec in (data.get("chains") or {}).items():
            chain_joints = tuple(spec.get("joints") or ())
            chains[cid] = ChainDef(
                id=cid,
                joints=chain_joints,
                effector=spec.get("effector", chain_joints[-1] if chain_joints else ""),
                priority=int(spec.get("priority", 0)),
                stretch_ratio=float(spec.get("stretch_ratio", 1.1)),
                curve_strength=float(spec.get("curve_strength", 0.5)),
                label=spec.get("label", cid)
            )

        poses = {
            pose_name: {jid: math.radians(float(deg)) for jid, deg in (values or {}).items()}
            for pose_name, values in (data.get("poses") or {}).items()
        }

        initial = data.get("initial_rotations")
        if initial is not None:
            initial_rotations = {jid: math.radians(float(deg)) for jid, deg in initial.items()}
        elif data.get("initial_pose") in poses:
            initial_rotations = dict(poses[data["initial_pose"]])
        else:
            initial_rotations = {}

        return cls(
            joints=joints,
            chains=chains,
            poses=poses,
            initial_rotations=initial_rotations,
            priority_order=tuple(data.get("priority_order") or ()),
            name=data.get("name", name)
        )


def _limits_from_degrees(limit: Optional[Mapping]) -> Optional[Tuple[float, float]]:
    if not limit:
        return None
    return (math.radians(float(limit["min"])), math.radians(float(limit["max"])))


def load_skeleton(path: Union[str, Path]) -> SkeletonDef:
    """Load a skeleton definition from a YAML file."""
    path = Path(path)
    with open(path, "r") as f:
        data = yaml.safe_load(f) or {}
    return SkeletonDef.from_dict(data, name=path.stem)
