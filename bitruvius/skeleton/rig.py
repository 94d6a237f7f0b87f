"""Skeleton Rig - run-time multi-chain state over an immutable definition"""

import threading
from typing import Dict, Mapping, Optional, Union
import numpy as np

from bitruvius.core import get_logger, Config, KinematicsError
from bitruvius.core.math2d import PointLike, vec2
from bitruvius.ik.solver import IKSolver, SolverKind
from bitruvius.kinematics.chain import IKResult
from bitruvius.kinematics.forward import WorldTransform, world_transform, world_transforms
from .bitruvius_rig import load_bitruvius_rig
from .definition import SkeletonDef, load_skeleton


class SkeletonRig:
    """
    Posable skeleton with independently targeted IK chains.

    Rotations are local radians per joint. The rotation mapping is never
    mutated in place: every edit or solve pass builds a new mapping and swaps
    it in under the lock, so readers always see a complete pose.

    Each frame, ``update()`` solves every enabled chain that has a target,
    in the definition's priority order. A chain that fails is logged and
    skipped; the others still run.
    """

    def __init__(
        self,
        definition: Optional[SkeletonDef] = None,
        config: Optional[Config] = None,
        solver: Optional[IKSolver] = None,
        origin: Optional[PointLike] = None
    ):
        self.logger = get_logger("skeleton.rig")
        self.config = config or Config()

        skeleton_config = self.config.skeleton

        if definition is None:
            path = skeleton_config.get("definition")
            definition = load_skeleton(path) if path else load_bitruvius_rig()
        self.definition = definition

        self.solver = solver or IKSolver(self.config)
        self._origin = vec2(origin if origin is not None else skeleton_config.get("origin", (0.0, 0.0)))

        self._lock = threading.RLock()
        self._rotations: Dict[str, float] = self._initial_rotations()
        self._targets: Dict[str, np.ndarray] = {}
        self._enabled: Dict[str, bool] = {cid: True for cid in definition.chains}
        self._solvers: Dict[str, SolverKind] = {}
        self._tuning: Dict[str, Dict[str, float]] = {}
        self.last_results: Dict[str, IKResult] = {}

        pose = skeleton_config.get("pose")
        if pose and pose in definition.poses:
            self.apply_pose(pose)

        self.logger.info(
            f"Initialized rig {definition.name!r} "
            f"({len(definition.joints)} joints, {len(definition.chains)} chains)"
        )

    def _initial_rotations(self) -> Dict[str, float]:
        sentinels = self.definition.hierarchy.sentinels
        rotations = {}
        for jid in self.definition.order:
            if jid in sentinels:
                continue
            angle = self.definition.initial_rotations.get(jid, 0.0)
            rotations[jid] = self.definition.clamp_rotation(jid, angle)
        return rotations

    # ---- Pose state ----

    @property
    def origin(self) -> np.ndarray:
        return self._origin.copy()

    @origin.setter
    def origin(self, value: PointLike) -> None:
        with self._lock:
            self._origin = vec2(value)

    @property
    def rotations(self) -> Dict[str, float]:
        """Copy of the current local rotations (radians)."""
        with self._lock:
            return dict(self._rotations)

    def rotation(self, joint_id: str) -> float:
        self.definition.joint(joint_id)
        with self._lock:
            return self._rotations.get(joint_id, 0.0)

    def set_rotation(self, joint_id: str, angle: float) -> float:
        """Set one joint's local rotation (clamped to its limits); returns the stored value."""
        clamped = self.definition.clamp_rotation(joint_id, angle)
        with self._lock:
            rotations = dict(self._rotations)
            rotations[joint_id] = clamped
            self._rotations = rotations
        return clamped

    def set_rotations(self, rotations: Mapping[str, float]) -> None:
        """Replace several rotations at once."""
        updated = {jid: self.definition.clamp_rotation(jid, a) for jid, a in rotations.items()}
        with self._lock:
            merged = dict(self._rotations)
            merged.update(updated)
            self._rotations = merged

    def apply_pose(self, name: str) -> None:
        """Replace every rotation with a named pose from the definition."""
        pose = self.definition.pose(name)
        self.set_rotations(pose)
        self.logger.debug(f"Applied pose {name!r}")

    def reset(self) -> None:
        """Back to the initial rotations with no targets."""
        with self._lock:
            self._rotations = self._initial_rotations()
            self._targets = {}
            self.last_results = {}

    # ---- Targets and chain state ----

    def set_target(self, chain_id: str, point: PointLike) -> None:
        self.definition.chain(chain_id)
        with self._lock:
            self._targets[chain_id] = vec2(point)

    def clear_target(self, chain_id: str) -> None:
        with self._lock:
            self._targets.pop(chain_id, None)

    def target(self, chain_id: str) -> Optional[np.ndarray]:
        with self._lock:
            point = self._targets.get(chain_id)
            return None if point is None else point.copy()

    def is_chain_enabled(self, chain_id: str) -> bool:
        self.definition.chain(chain_id)
        with self._lock:
            return self._enabled.get(chain_id, True)

    def set_chain_enabled(self, chain_id: str, enabled: bool) -> None:
        self.definition.chain(chain_id)
        with self._lock:
            self._enabled[chain_id] = bool(enabled)

    def toggle_chain(self, chain_id: str) -> bool:
        """Flip a chain's enabled flag; returns the new state."""
        self.definition.chain(chain_id)
        with self._lock:
            enabled = not self._enabled.get(chain_id, True)
            self._enabled[chain_id] = enabled
            return enabled

    def set_chain_solver(self, chain_id: str, kind: Optional[Union[SolverKind, str]]) -> None:
        """Override the solver for one chain (None restores the default)."""
        self.definition.chain(chain_id)
        with self._lock:
            if kind is None:
                self._solvers.pop(chain_id, None)
            else:
                self._solvers[chain_id] = SolverKind.parse(kind)

    def set_chain_tuning(
        self,
        chain_id: str,
        stretch_ratio: Optional[float] = None,
        curve_strength: Optional[float] = None
    ) -> None:
        """Override a chain's soft reach / bend bias tuning."""
        self.definition.chain(chain_id)
        with self._lock:
            tuning = self._tuning.setdefault(chain_id, {})
            if stretch_ratio is not None:
                tuning["stretch_ratio"] = float(stretch_ratio)
            if curve_strength is not None:
                tuning["curve_strength"] = float(curve_strength)

    # ---- Solving ----

    def _solve_into(self, chain_id: str, rotations: Dict[str, float], target: np.ndarray) -> Optional[IKResult]:
        tuning = self._tuning.get(chain_id, {})
        spec = self.definition.chain_spec(
            chain_id,
            origin=self._origin,
            stretch_ratio=tuning.get("stretch_ratio"),
            curve_strength=tuning.get("curve_strength")
        )
        if spec is None:
            self.logger.debug(f"Chain {chain_id!r} has fewer than 2 joints, skipped")
            return None

        result = self.solver.solve(spec, target, rotations, kind=self._solvers.get(chain_id))
        for jid in spec.joint_ids:
            rotations[jid] = result.angles[jid]
        return result

    def solve_chain(self, chain_id: str) -> Optional[IKResult]:
        """
        Solve a single chain toward its target now.

        Returns:
            IKResult, or None when the chain has no target or is too short
        """
        self.definition.chain(chain_id)
        with self._lock:
            target = self._targets.get(chain_id)
            if target is None:
                return None
            rotations = dict(self._rotations)
            result = self._solve_into(chain_id, rotations, target)
            if result is not None:
                self._rotations = rotations
                self.last_results[chain_id] = result
            return result

    def update(self) -> Dict[str, IKResult]:
        """
        Run one IK pass over all enabled, targeted chains.

        Chains are solved one after another on a working copy of the pose;
        the copy is swapped in once the pass completes.

        Returns:
            Results of the chains that were solved this pass
        """
        results: Dict[str, IKResult] = {}

        with self._lock:
            if not self._targets or not self.solver.enabled:
                return results

            rotations = dict(self._rotations)
            for chain_id in self.definition.solve_order():
                target = self._targets.get(chain_id)
                if target is None or not self._enabled.get(chain_id, True):
                    continue
                try:
                    result = self._solve_into(chain_id, rotations, target)
                except KinematicsError as e:
                    self.logger.warning(f"IK on chain {chain_id!r} failed: {e}")
                    continue
                if result is not None:
                    results[chain_id] = result

            self._rotations = rotations
            self.last_results.update(results)

        return results

    # ---- Read side ----

    def world_transform(self, joint_id: str) -> WorldTransform:
        with self._lock:
            return world_transform(self.definition.hierarchy, joint_id, self._rotations, self._origin)

    def world_transforms(self) -> Dict[str, WorldTransform]:
        with self._lock:
            return world_transforms(self.definition.hierarchy, self._rotations, self._origin)

    def snapshot(self) -> dict:
        """
        Render-ready view of the current pose.

        Returns:
            Dict with per-joint world placement, color and limits, and
            per-chain enable flag, target and last solve error
        """
        with self._lock:
            transforms = world_transforms(self.definition.hierarchy, self._rotations, self._origin)
            targets = {cid: p.copy() for cid, p in self._targets.items()}
            rotations = dict(self._rotations)
            enabled = dict(self._enabled)
            last_results = dict(self.last_results)

        joints = {}
        for jid in self.definition.order:
            joint = self.definition.joints[jid]
            transform = transforms[jid]
            joints[jid] = {
                "parent": joint.parent,
                "position": [transform.x, transform.y],
                "angle": transform.angle,
                "rotation": rotations.get(jid, 0.0),
                "label": joint.label,
                "color": joint.color,
                "limits": list(joint.limits) if joint.limits else None,
            }

        chains = {}
        for cid, chain in self.definition.chains.items():
            last = last_results.get(cid)
            target = targets.get(cid)
            chains[cid] = {
                "label": chain.label,
                "joints": list(chain.joints),
                "enabled": enabled.get(cid, True),
                "target": None if target is None else [float(target[0]), float(target[1])],
                "error": None if last is None else last.error,
            }

        return {"joints": joints, "chains": chains}

    # ---- Persistence ----

    def to_dict(self) -> dict:
        with self._lock:
            return {
                "skeleton": self.definition.name,
                "origin": [float(self._origin[0]), float(self._origin[1])],
                "rotations": {jid: float(a) for jid, a in self._rotations.items()},
                "targets": {cid: [float(p[0]), float(p[1])] for cid, p in self._targets.items()},
                "enabled": dict(self._enabled),
                "solvers": {cid: kind.value for cid, kind in self._solvers.items()},
                "tuning": {cid: dict(t) for cid, t in self._tuning.items()},
            }

    def restore(self, data: Mapping) -> None:
        """Load state produced by ``to_dict`` into this rig."""
        rotations = self._initial_rotations()
        for jid, angle in (data.get("rotations") or {}).items():
            rotations[jid] = self.definition.clamp_rotation(jid, float(angle))

        targets = {}
        for cid, point in (data.get("targets") or {}).items():
            self.definition.chain(cid)
            targets[cid] = vec2(point)

        with self._lock:
            if data.get("origin") is not None:
                self._origin = vec2(data["origin"])
            self._rotations = rotations
            self._targets = targets
            for cid, enabled in (data.get("enabled") or {}).items():
                self.set_chain_enabled(cid, enabled)
            self._solvers = {}
            for cid, kind in (data.get("solvers") or {}).items():
                self.set_chain_solver(cid, kind)
            self._tuning = {}
            for cid, tuning in (data.get("tuning") or {}).items():
                self.set_chain_tuning(cid, **tuning)
            self.last_results = {}

    @classmethod
    def from_dict(
        cls,
        data: Mapping,
        definition: Optional[SkeletonDef] = None,
        config: Optional[Config] = None,
        solver: Optional[IKSolver] = None
    ) -> "SkeletonRig":
        rig = cls(definition=definition, config=config, solver=solver)
        rig.restore(data)
        return rig
