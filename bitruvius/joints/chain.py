"""Joint Chain - per-frame driver for a joint tree and its IK target"""

import math
from dataclasses import replace
from typing import Optional, Union
import numpy as np

from bitruvius.core import get_logger, Config
from bitruvius.core.math2d import PointLike, vec2
from bitruvius.ik.solver import IKSolver, SolverKind
from bitruvius.kinematics.chain import IKResult
from .joint import JointConstraints
from .tree import JointTree


class JointChain:
    """
    A joint tree driven toward a single target.

    Each ``update(dt)`` advances FK smoothing on every joint and then, when
    IK is enabled and a target is set, solves the path from the root to the
    deepest joint with the selected solver and snaps the solved angles in.

    With ``damped_ccd`` on and the CCD solver selected, the tree's own
    weighted/damped CCD is used instead of the flat chain CCD.
    """

    def __init__(
        self,
        tree: Optional[JointTree] = None,
        config: Optional[Config] = None,
        solver: Optional[IKSolver] = None
    ):
        self.logger = get_logger("joints.chain")
        self.config = config or Config()

        chain_config = self.config.joint_chain

        self.tree = tree or self.create_default_tree(chain_config.get("root_position", (400.0, 300.0)))
        target = chain_config.get("target", (600.0, 300.0))
        self._target: Optional[np.ndarray] = None if target is None else vec2(target)

        self.ik_enabled = chain_config.get("ik_enabled", True)
        self.solver_kind = SolverKind.parse(chain_config.get("solver", "ccd"))
        self.damped_ccd = chain_config.get("damped_ccd", False)

        self.solver = solver or IKSolver(self.config)
        self.settings = replace(
            self.solver.settings,
            iterations=int(chain_config.get("iterations", 10)),
            threshold=float(chain_config.get("threshold", 0.1)),
            strength=float(chain_config.get("ik_strength", 1.0))
        )
        self.last_result: Optional[IKResult] = None

        self.logger.info(
            f"Initialized joint chain ({self.tree.joint_count} joints, "
            f"solver={self.solver_kind.value})"
        )

    @staticmethod
    def create_default_tree(root_position: PointLike = (400.0, 300.0)) -> JointTree:
        """Root plus three joints; the middle two carry angle limits."""
        tree = JointTree(root_position=root_position, root_length=60.0, root_name="Root")
        tree.add_joint(
            tree.root_id, length=50.0, name="Joint_1", offset=(60.0, 0.0), color="#81c784",
            constraints=JointConstraints(True, -math.pi * 0.8, math.pi * 0.8)
        )
        tree.add_joint(
            length=40.0, name="Joint_2", offset=(50.0, 0.0), color="#ffb74d",
            constraints=JointConstraints(True, -math.pi * 0.6, math.pi * 0.6)
        )
        tree.add_joint(length=30.0, name="EndEffector", offset=(40.0, 0.0), color="#e57373")
        return tree

    @property
    def target(self) -> Optional[np.ndarray]:
        return None if self._target is None else self._target.copy()

    @target.setter
    def target(self, point: Optional[PointLike]) -> None:
        self._target = None if point is None else vec2(point)

    @property
    def ik_strength(self) -> float:
        return self.settings.strength

    @ik_strength.setter
    def ik_strength(self, value: float) -> None:
        self.settings = replace(self.settings, strength=float(value))

    @property
    def iterations(self) -> int:
        return self.settings.iterations

    @iterations.setter
    def iterations(self, value: int) -> None:
        self.settings = replace(self.settings, iterations=int(value))

    @property
    def threshold(self) -> float:
        return self.settings.threshold

    @threshold.setter
    def threshold(self, value: float) -> None:
        self.settings = replace(self.settings, threshold=float(value))

    def set_solver(self, kind: Union[SolverKind, str]) -> None:
        self.solver_kind = SolverKind.parse(kind)

    def update(self, delta_time: float) -> None:
        """Advance one frame: FK smoothing, then IK toward the target."""
        self.tree.update_fk(delta_time)
        if self.ik_enabled and self._target is not None:
            self.update_ik()

    def update_ik(self) -> Optional[IKResult]:
        """
        Solve the root-to-deepest path toward the target.

        Returns:
            IKResult of the flat solvers, or None for the tree's damped CCD
            and for trees with nothing to solve
        """
        if self._target is None or self.tree.joint_count < 2:
            return None

        effector = self.tree.deepest_joint()

        if self.damped_ccd and self.solver_kind is SolverKind.CCD:
            self.tree.update_ik(effector.id, self._target, self.settings.iterations, self.settings.threshold)
            return None

        spec = self.tree.chain_spec(effector.id)
        result = self.solver.solve(spec, self._target, self.tree.angles(), kind=self.solver_kind, settings=self.settings)
        for jid in spec.joint_ids:
            self.tree.joint(jid).snap_to(result.angles[jid])

        self.last_result = result
        return result

    def end_effector_position(self) -> np.ndarray:
        return self.tree.end_effector_position(self.tree.deepest_joint().id)

    def reset(self) -> None:
        self.tree.reset()
        self.last_result = None

    def to_dict(self) -> dict:
        return {
            "tree": self.tree.to_dict(),
            "target": None if self._target is None else [float(self._target[0]), float(self._target[1])],
            "ik_enabled": self.ik_enabled,
            "ik_strength": self.settings.strength,
            "solver": self.solver_kind.value,
            "damped_ccd": self.damped_ccd,
            "iterations": self.settings.iterations,
            "threshold": self.settings.threshold,
        }

    @classmethod
    def from_dict(
        cls,
        data: dict,
        config: Optional[Config] = None,
        solver: Optional[IKSolver] = None
    ) -> "JointChain":
        chain = cls(tree=JointTree.from_dict(data["tree"]), config=config, solver=solver)
        chain.target = data.get("target")
        chain.ik_enabled = bool(data.get("ik_enabled", True))
        chain.solver_kind = SolverKind.parse(data.get("solver", chain.solver_kind))
        chain.damped_ccd = bool(data.get("damped_ccd", chain.damped_ccd))
        chain.settings = replace(
            chain.settings,
            iterations=int(data.get("iterations", chain.settings.iterations)),
            threshold=float(data.get("threshold", chain.settings.threshold)),
            strength=float(data.get("ik_strength", chain.settings.strength))
        )
        return chain
