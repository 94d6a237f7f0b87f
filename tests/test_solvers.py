"""Tests for the IK solver set and the solver front end."""

import math

import numpy as np
import pytest

from bitruvius.ik import (
    IKSolver, SolverKind, soft_reach_target, solve_analytical, solve_ccd,
    solve_chain, solve_fabrik, solve_fabrik_constrained, solve_jacobian
)
from bitruvius.joints import JointChain
from bitruvius.kinematics import IKSettings

from conftest import make_chain, segment_lengths


ITERATIVE = [SolverKind.CCD, SolverKind.FABRIK, SolverKind.JACOBIAN]
TARGETS = [(90.0, 60.0), (-40.0, 100.0), (120.0, -30.0), (20.0, -70.0)]


def solve(kind, chain, target, angles, settings, rng=None):
    return solve_chain(kind, chain, target, angles, settings, rng)


class TestConvergence:
    @pytest.mark.parametrize("kind", ITERATIVE + [SolverKind.FABRIK_CONSTRAINED])
    def test_converges_within_configured_budget(self, kind, config):
        tree = JointChain.create_default_tree(config.joint_chain["root_position"])
        chain = tree.chain_spec()
        settings = IKSettings.from_config(config.ik)
        target = (520.0, 380.0)

        result = solve(kind, chain, target, tree.angles(), settings, np.random.default_rng(0))

        assert result.error < settings.threshold
        assert chain.error(result.angles, target) == pytest.approx(result.error)

    def test_constrained_fabrik_reaches_target(self, three_link, generous_settings, rng):
        angles = {"j0": 0.2, "j1": 0.3, "j2": 0.1}
        result = solve_fabrik_constrained(three_link, (90.0, 60.0), angles, generous_settings, rng)
        assert result.error < 0.5

    def test_ccd_honours_iteration_cap(self, three_link):
        settings = IKSettings(iterations=1, threshold=1e-9)
        result = solve_ccd(three_link, (0.0, 120.0), {}, settings)
        assert result.iterations == 1


class TestRigidity:
    @pytest.mark.parametrize("kind", list(SolverKind))
    @pytest.mark.parametrize("target", TARGETS + [(400.0, 0.0), (5.0, 5.0)])
    def test_segment_lengths_preserved(self, kind, target, three_link, rng):
        settings = IKSettings(iterations=50)
        result = solve(kind, three_link, target, {"j0": 0.1, "j1": 0.1, "j2": 0.1}, settings, rng)
        lengths = segment_lengths(three_link.points(result.angles))
        assert lengths == pytest.approx([60.0, 50.0, 40.0], abs=1e-3)


class TestConstraints:
    LIMITS = {"j0": (-0.5, 0.5), "j1": (0.0, 1.2), "j2": (-0.8, 0.0)}

    @pytest.mark.parametrize("kind", list(SolverKind))
    @pytest.mark.parametrize("target", TARGETS + [(-150.0, 0.0)])
    def test_angles_stay_in_limits(self, kind, target, rng):
        chain = make_chain([60.0, 50.0, 40.0], limits=self.LIMITS)
        settings = IKSettings(iterations=100)
        result = solve(kind, chain, target, {"j0": 0.0, "j1": 0.5, "j2": -0.2}, settings, rng)
        for jid, (lo, hi) in self.LIMITS.items():
            assert lo - 1e-9 <= result.angles[jid] <= hi + 1e-9

    @pytest.mark.parametrize("kind", ITERATIVE)
    def test_locked_joint_untouched(self, kind):
        chain = make_chain([60.0, 50.0, 40.0], locked=("j1",))
        settings = IKSettings(iterations=50)
        result = solve(kind, chain, (50.0, 80.0), {"j0": 0.0, "j1": 0.4, "j2": 0.0}, settings)
        assert result.angles["j1"] == 0.4


class TestConstrainedFabrik:
    @pytest.mark.parametrize("target", TARGETS + [(300.0, 40.0), (-10.0, 0.0)])
    def test_best_candidate_monotonicity(self, target, rng):
        chain = make_chain([60.0, 50.0, 40.0], limits={"j1": (-1.0, 1.0)}, name="l_arm_chain", bend_direction=-1)
        settings = IKSettings()
        result = solve_fabrik_constrained(chain, target, {"j0": 0.3, "j1": 0.2, "j2": 0.1}, settings, rng)

        assert result.error_history
        assert result.error <= min(result.error_history) + 1e-6

    @pytest.mark.parametrize("target", [(50.0, 80.0), (-40.0, 100.0), (120.0, -30.0)])
    def test_locked_joint_keeps_best_candidate(self, target, rng):
        chain = make_chain([60.0, 50.0, 40.0], locked=("j1",))
        start = {"j0": 0.0, "j1": 0.4, "j2": 0.0}
        result = solve_fabrik_constrained(chain, target, start, IKSettings(), rng)

        assert result.angles["j1"] == 0.4
        assert result.error <= min(result.error_history)
        assert chain.error(result.angles, result.effective_target) == pytest.approx(result.error)

    def test_deterministic_with_seed(self, three_link):
        settings = IKSettings()
        target = (-60.0, 20.0)
        a = solve_fabrik_constrained(three_link, target, {}, settings, np.random.default_rng(7))
        b = solve_fabrik_constrained(three_link, target, {}, settings, np.random.default_rng(7))
        assert a.angles == b.angles
        assert a.error_history == b.error_history

    def test_soft_reach_inside_limit_untouched(self):
        root = np.zeros(2)
        assert soft_reach_target(root, (50.0, 0.0), 150.0) == pytest.approx([50.0, 0.0])

    def test_soft_reach_never_exceeds_stretch(self):
        root = np.zeros(2)
        far = soft_reach_target(root, (10000.0, 0.0), 150.0, stretch_ratio=1.1)
        assert far[0] <= 150.0 * 1.1 + 1e-9
        assert far[1] == pytest.approx(0.0)

    def test_soft_reach_continuity(self):
        chain = make_chain([60.0, 50.0, 40.0])
        settings = IKSettings()
        angles = {jid: 0.0 for jid in chain.joint_ids}
        direction = np.array([math.cos(0.3), math.sin(0.3)])

        effectors = []
        for dist in np.linspace(120.0, 220.0, 101):
            result = solve_fabrik_constrained(
                chain, direction * dist, angles, settings, np.random.default_rng(0)
            )
            effectors.append(chain.effector(result.angles))

        jumps = [float(np.linalg.norm(b - a)) for a, b in zip(effectors[:-1], effectors[1:])]
        # Target moves 1 unit per step
        assert max(jumps) < 2.0

    def test_effective_target_reported(self, three_link):
        result = solve_fabrik_constrained(three_link, (1000.0, 0.0), {}, IKSettings())
        assert result.effective_target is not None
        assert np.linalg.norm(result.effective_target) <= three_link.total_length * 1.1

    def test_bend_side_follows_direction(self):
        target = (70.0, 0.0)
        left = make_chain([50.0, 50.0], name="l_arm_chain", bend_direction=-1)
        right = make_chain([50.0, 50.0], name="r_arm_chain", bend_direction=1)
        settings = IKSettings()
        start = {"j0": 0.0, "j1": 0.0}

        left_elbow = left.points(solve_fabrik_constrained(left, target, start, settings).angles)[1]
        right_elbow = right.points(solve_fabrik_constrained(right, target, start, settings).angles)[1]
        assert left_elbow[1] < 0.0 < right_elbow[1]


class TestAnalytical:
    def test_exact_solution(self, two_link):
        target = np.array([120.0 * math.cos(0.7), 120.0 * math.sin(0.7)])
        result = solve_analytical(two_link, target, {"j0": 0.0, "j1": 0.0})
        assert two_link.effector(result.angles) == pytest.approx(target, abs=1e-9)
        assert result.iterations == 0
        assert result.converged

    def test_bend_direction_mirrors(self):
        target = (120.0, 0.0)
        up = make_chain([100.0, 80.0], bend_direction=1)
        down = make_chain([100.0, 80.0], bend_direction=-1)
        up_result = solve_analytical(up, target, {})
        down_result = solve_analytical(down, target, {})

        assert up.effector(up_result.angles) == pytest.approx(target, abs=1e-9)
        assert down.effector(down_result.angles) == pytest.approx(target, abs=1e-9)
        assert up_result.angles["j1"] == pytest.approx(-down_result.angles["j1"])

    def test_out_of_reach_points_straight(self, two_link):
        result = solve_analytical(two_link, (0.0, 500.0), {})
        assert result.angles["j0"] == pytest.approx(math.pi / 2)
        assert result.angles["j1"] == pytest.approx(0.0)

    def test_too_close_zeroes_angles(self, two_link):
        result = solve_analytical(two_link, (10.0, 0.0), {"j0": 1.0, "j1": 1.0})
        assert result.angles["j0"] == 0.0
        assert result.angles["j1"] == 0.0

    def test_wrong_size_is_noop(self, three_link):
        angles = {"j0": 0.1, "j1": 0.2, "j2": 0.3}
        result = solve_analytical(three_link, (50.0, 50.0), angles)
        assert result.angles == angles
        assert not result.converged


class TestIdempotence:
    @pytest.mark.parametrize("kind", list(SolverKind))
    def test_resolve_is_stable(self, kind, rng):
        chain = make_chain([100.0, 80.0])
        settings = IKSettings(iterations=500, jacobian_iterations=500, threshold=0.1)
        target = (90.0, 110.0)

        first = solve(kind, chain, target, {"j0": 0.2, "j1": 0.4}, settings, rng)
        second = solve(kind, chain, target, first.angles, settings, rng)

        for jid in chain.joint_ids:
            assert second.angles[jid] == pytest.approx(first.angles[jid], abs=0.01)

    @pytest.mark.parametrize("kind", list(SolverKind))
    def test_input_not_mutated(self, kind, three_link):
        angles = {"j0": 0.2, "j1": 0.3, "j2": 0.1}
        before = dict(angles)
        solve(kind, three_link, (40.0, 90.0), angles, IKSettings())
        assert angles == before


class TestIKSolver:
    def test_reads_config(self, config):
        solver = IKSolver(config)
        assert solver.default_kind is SolverKind.FABRIK_CONSTRAINED
        assert solver.settings.iterations == 10
        assert solver.settings.bend_angle == pytest.approx(math.radians(20.0))

    def test_disabled_returns_input(self, config, three_link):
        solver = IKSolver(config)
        solver.enabled = False
        angles = {"j0": 0.3}
        result = solver.solve(three_link, (10.0, 10.0), angles)
        assert result.angles == angles
        assert solver.solve_count == 0

    def test_kind_override_and_count(self, config, two_link):
        solver = IKSolver(config)
        result = solver.solve(two_link, (120.0, 0.0), {}, kind="analytical")
        assert result.error < 1e-6
        assert solver.solve_count == 1
        solver.reset()
        assert solver.solve_count == 0

    def test_parse(self):
        assert SolverKind.parse("CCD") is SolverKind.CCD
        assert SolverKind.parse("fabrik_constrained") is SolverKind.FABRIK_CONSTRAINED
        with pytest.raises(ValueError):
            SolverKind.parse("newton")

    def test_settings_from_config_ignores_unknown(self):
        settings = IKSettings.from_config({"iterations": "25", "ik_strength": 0.5, "solver": "ccd"})
        assert settings.iterations == 25
        assert settings.strength == 0.5
