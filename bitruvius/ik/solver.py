"""Inverse Kinematics Solver - solver selection and dispatch"""

from enum import Enum
from typing import Mapping, Optional, Union
import numpy as np

from bitruvius.core import get_logger, Config
from bitruvius.core.math2d import PointLike
from bitruvius.kinematics.chain import ChainSpec, IKResult, IKSettings
from bitruvius.kinematics.forward import JointId
from .analytical import solve_analytical
from .ccd import solve_ccd
from .fabrik import solve_fabrik, solve_fabrik_constrained
from .jacobian import solve_jacobian


class SolverKind(Enum):
    """Available IK algorithms."""
    CCD = "ccd"
    FABRIK = "fabrik"
    FABRIK_CONSTRAINED = "fabrik_constrained"
    JACOBIAN = "jacobian"
    ANALYTICAL = "analytical"

    @classmethod
    def parse(cls, value: Union["SolverKind", str]) -> "SolverKind":
        """Accept an enum member or its (case-insensitive) name/value."""
        if isinstance(value, cls):
            return value
        key = str(value).strip().lower()
        for kind in cls:
            if key in (kind.value, kind.name.lower()):
                return kind
        raise ValueError(f"Unknown IK solver: {value!r}")


def solve_chain(
    kind: SolverKind,
    chain: ChainSpec,
    target: PointLike,
    angles: Mapping[JointId, float],
    settings: Optional[IKSettings] = None,
    rng: Optional[np.random.Generator] = None
) -> IKResult:
    """
    Run one solver on one chain.

    Args:
        kind: Algorithm to use
        chain: Chain to solve
        target: World target for the chain's effector
        angles: Current local joint angles (not modified)
        settings: Solver tuning (defaults if omitted)
        rng: Random source for the constrained FABRIK stagnation escape

    Returns:
        IKResult with a new angle mapping
    """
    settings = settings or IKSettings()

    if kind is SolverKind.CCD:
        return solve_ccd(chain, target, angles, settings)
    elif kind is SolverKind.FABRIK:
        return solve_fabrik(chain, target, angles, settings)
    elif kind is SolverKind.FABRIK_CONSTRAINED:
        return solve_fabrik_constrained(chain, target, angles, settings, rng)
    elif kind is SolverKind.JACOBIAN:
        return solve_jacobian(chain, target, angles, settings)
    elif kind is SolverKind.ANALYTICAL:
        return solve_analytical(chain, target, angles, settings)

    raise ValueError(f"Unsupported solver: {kind!r}")


class IKSolver:
    """
    Config-driven front end to the solver set.

    Holds the default algorithm, the tuning read from the ``ik`` config
    section and a seeded random generator, so repeated runs with the same
    config produce the same poses.
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        settings: Optional[IKSettings] = None,
        seed: Optional[int] = None
    ):
        self.logger = get_logger("ik.solver")
        self.config = config or Config()

        ik_config = self.config.ik

        self._enabled = ik_config.get("enabled", True)
        self.settings = settings or IKSettings.from_config(ik_config)
        self.default_kind = SolverKind.parse(ik_config.get("solver", "fabrik_constrained"))
        self._seed = ik_config.get("seed", 0) if seed is None else seed
        self._rng = np.random.default_rng(self._seed)
        self._solve_count = 0

        self.logger.info(
            f"Initialized IK solver (solver={self.default_kind.value}, "
            f"iterations={self.settings.iterations}, seed={self._seed})"
        )

    @property
    def enabled(self) -> bool:
        return self._enabled

    @enabled.setter
    def enabled(self, value: bool) -> None:
        self._enabled = bool(value)

    @property
    def solve_count(self) -> int:
        return self._solve_count

    def solve(
        self,
        chain: ChainSpec,
        target: PointLike,
        angles: Mapping[JointId, float],
        kind: Optional[Union[SolverKind, str]] = None,
        settings: Optional[IKSettings] = None
    ) -> IKResult:
        """Solve one chain with the given (or default) algorithm."""
        if not self._enabled:
            return IKResult.unchanged(angles)

        kind = self.default_kind if kind is None else SolverKind.parse(kind)
        result = solve_chain(kind, chain, target, angles, settings or self.settings, self._rng)
        self._solve_count += 1

        if not result.converged:
            self.logger.debug(
                f"{kind.value} on chain {chain.name!r} stopped after "
                f"{result.iterations} iterations (error={result.error:.4f})"
            )

        return result

    def reset(self) -> None:
        """Reseed the random source and clear counters."""
        self._rng = np.random.default_rng(self._seed)
        self._solve_count = 0
