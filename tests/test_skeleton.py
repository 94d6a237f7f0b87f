"""Tests for skeleton definitions, the built-in figure and the multi-chain rig."""

import math
import threading

import numpy as np
import pytest
import yaml

from bitruvius.core import SkeletonDefinitionError, UnknownJointError
from bitruvius.ik import IKSolver, SolverKind
from bitruvius.skeleton import (
    SkeletonDef, SkeletonRig, chain_bend_direction, load_bitruvius_rig, load_skeleton
)


def small_data():
    return {
        "joints": {
            "root": {"parent": None, "pivot": [0, 0]},
            "hip": {"parent": "root", "pivot": [0, 0]},
            "knee": {"parent": "hip", "pivot": [0, 40]},
            "ankle": {"parent": "knee", "pivot": [0, 35]},
        },
        "limits": {"knee": {"min": 0, "max": 150}},
        "chains": {
            "leg": {"joints": ["hip", "knee", "ankle"], "effector": "ankle"},
        },
        "poses": {"bent": {"knee": 90}},
        "initial_pose": "bent",
    }


@pytest.fixture
def rig(config):
    return SkeletonRig(config=config, origin=(0.0, 0.0))


class TestDefinition:
    def test_builtin_figure(self):
        skeleton = load_bitruvius_rig()
        assert len(skeleton.joints) == 22
        assert set(skeleton.chains) == {"l_arm_chain", "r_arm_chain", "l_leg_chain", "r_leg_chain"}
        assert skeleton.hierarchy.sentinels == frozenset({"root"})
        assert skeleton.joint("l_elbow").limits == pytest.approx((0.0, math.radians(150)))
        assert skeleton.initial_rotations["l_shoulder"] == pytest.approx(math.radians(45))

    def test_order_parents_first(self):
        skeleton = load_bitruvius_rig()
        seen = set()
        for jid in skeleton.order:
            parent = skeleton.joints[jid].parent
            assert parent is None or parent in seen
            seen.add(jid)

    def test_solve_order_by_priority(self):
        skeleton = load_bitruvius_rig()
        assert skeleton.solve_order() == ["l_arm_chain", "r_arm_chain", "l_leg_chain", "r_leg_chain"]

    def test_pose_fills_missing_joints(self):
        skeleton = load_bitruvius_rig()
        pose = skeleton.pose("T-pose")
        assert pose["l_shoulder"] == pytest.approx(math.pi / 2)
        assert pose["head"] == 0.0
        assert "root" not in pose
        with pytest.raises(KeyError):
            skeleton.pose("moonwalk")

    def test_immutable(self):
        skeleton = load_bitruvius_rig()
        with pytest.raises(TypeError):
            skeleton.joints["extra"] = None
        with pytest.raises(AttributeError):
            skeleton.name = "other"

    def test_chain_spec_uses_effector_pivot(self):
        skeleton = SkeletonDef.from_dict(small_data())
        spec = skeleton.chain_spec("leg", origin=(10.0, 20.0))
        assert spec.joint_ids == ("hip", "knee")
        assert list(spec.lengths) == pytest.approx([40.0, 35.0])
        assert spec.points({})[-1] == pytest.approx([10.0, 95.0])

    def test_short_chain_has_no_spec(self):
        data = small_data()
        data["chains"]["stub"] = {"joints": ["knee"]}
        skeleton = SkeletonDef.from_dict(data)
        assert skeleton.chain_spec("stub") is None

    def test_unknown_ids(self):
        skeleton = SkeletonDef.from_dict(small_data())
        with pytest.raises(UnknownJointError):
            skeleton.joint("elbow")
        with pytest.raises(UnknownJointError):
            skeleton.chain("arm")

    def test_load_from_yaml(self, tmp_path):
        path = tmp_path / "leg.yaml"
        path.write_text(yaml.safe_dump(small_data()))
        skeleton = load_skeleton(path)
        assert skeleton.name == "leg"
        assert skeleton.initial_rotations["knee"] == pytest.approx(math.pi / 2)


class TestValidation:
    def test_unknown_parent(self):
        data = small_data()
        data["joints"]["toe"] = {"parent": "foot", "pivot": [0, 10]}
        with pytest.raises(SkeletonDefinitionError):
            SkeletonDef.from_dict(data)

    def test_cycle(self):
        data = small_data()
        data["joints"]["a"] = {"parent": "b", "pivot": [1, 0]}
        data["joints"]["b"] = {"parent": "a", "pivot": [1, 0]}
        with pytest.raises(SkeletonDefinitionError):
            SkeletonDef.from_dict(data)

    def test_broken_chain(self):
        data = small_data()
        data["chains"]["leg"]["joints"] = ["hip", "ankle"]
        with pytest.raises(SkeletonDefinitionError):
            SkeletonDef.from_dict(data)

    def test_effector_must_end_chain(self):
        data = small_data()
        data["chains"]["leg"]["effector"] = "knee"
        with pytest.raises(SkeletonDefinitionError):
            SkeletonDef.from_dict(data)

    def test_inverted_limits(self):
        data = small_data()
        data["limits"]["knee"] = {"min": 90, "max": 10}
        with pytest.raises(SkeletonDefinitionError):
            SkeletonDef.from_dict(data)

    def test_empty(self):
        with pytest.raises(SkeletonDefinitionError):
            SkeletonDef.from_dict({})


class TestBendDirection:
    @pytest.mark.parametrize("chain_id, expected", [
        ("r_arm_chain", 1),
        ("right_leg", 1),
        ("l_arm_chain", -1),
        ("l_leg_chain", -1),
        ("tail", None),
        # Right-prefix only; a stray "r_" inside the name does not count
        ("upper_arm", -1),
    ])
    def test_direction(self, chain_id, expected):
        assert chain_bend_direction(chain_id) == expected


class TestRig:
    def test_initial_pose(self, rig):
        assert rig.rotation("l_shoulder") == pytest.approx(math.radians(45))
        assert rig.rotation("l_elbow") == pytest.approx(math.radians(30))

    def test_set_rotation_clamps(self, rig):
        stored = rig.set_rotation("l_elbow", math.radians(170))
        assert stored == pytest.approx(math.radians(150))
        with pytest.raises(UnknownJointError):
            rig.set_rotation("tail", 0.0)

    def test_rotations_is_a_copy(self, rig):
        rotations = rig.rotations
        rotations["l_elbow"] = 99.0
        assert rig.rotation("l_elbow") != 99.0

    def test_world_transform_of_root_child(self, rig):
        transform = rig.world_transform("torso")
        assert transform.position == pytest.approx([0.0, -58.0])

    def test_update_without_targets_is_noop(self, rig):
        before = rig.rotations
        assert rig.update() == {}
        assert rig.rotations == before

    def test_update_reaches_targets(self, rig):
        rig.set_chain_solver("r_arm_chain", "analytical")
        shoulder = rig.world_transform("r_shoulder").position
        assert shoulder == pytest.approx([54.0, -71.0])
        target = shoulder + np.array([27.0, 36.0])
        rig.set_target("r_arm_chain", target)

        results = rig.update()

        assert set(results) == {"r_arm_chain"}
        wrist = rig.world_transform("r_wrist").position
        assert wrist == pytest.approx(target, abs=1e-6)
        assert results["r_arm_chain"].error < 1e-6
        assert 0.0 <= rig.rotation("r_elbow") <= math.radians(150)

    def test_limits_hold_after_update(self, rig):
        for cid in rig.definition.chains:
            rig.set_target(cid, (500.0, -500.0))
        rig.update()
        for jid, (lo, hi) in rig.definition.limits.items():
            assert lo - 1e-9 <= rig.rotation(jid) <= hi + 1e-9

    def test_disabled_chain_is_skipped(self, rig):
        rig.set_target("l_arm_chain", (-200.0, 0.0))
        assert rig.toggle_chain("l_arm_chain") is False
        before = rig.rotation("l_shoulder")
        assert rig.update() == {}
        assert rig.rotation("l_shoulder") == before

    def test_clear_target(self, rig):
        rig.set_target("r_arm_chain", (100.0, 0.0))
        rig.clear_target("r_arm_chain")
        assert rig.target("r_arm_chain") is None
        assert rig.solve_chain("r_arm_chain") is None

    def test_solve_single_chain(self, rig):
        rig.set_chain_solver("r_arm_chain", SolverKind.CCD)
        rig.set_target("r_arm_chain", (80.0, -40.0))
        result = rig.solve_chain("r_arm_chain")
        assert result is not None
        assert rig.last_results["r_arm_chain"] is result

    def test_apply_pose(self, rig):
        rig.apply_pose("walk")
        assert rig.rotation("l_knee") == pytest.approx(math.radians(60))
        assert rig.rotation("torso") == pytest.approx(math.radians(5))

    def test_snapshot(self, rig):
        rig.set_target("l_arm_chain", (-60.0, -20.0))
        snapshot = rig.snapshot()
        assert len(snapshot["joints"]) == 22
        assert snapshot["joints"]["torso"]["color"] == "#4ECDC4"
        assert snapshot["chains"]["l_arm_chain"]["target"] == [-60.0, -20.0]
        assert snapshot["chains"]["l_arm_chain"]["label"] == "Left Arm"

    def test_persistence_round_trip(self, rig, config):
        rig.apply_pose("walk")
        rig.set_target("r_leg_chain", (30.0, 80.0))
        rig.set_chain_enabled("l_arm_chain", False)
        rig.set_chain_solver("r_leg_chain", "jacobian")
        rig.set_chain_tuning("r_leg_chain", stretch_ratio=1.2)

        data = yaml.safe_load(yaml.safe_dump(rig.to_dict()))
        restored = SkeletonRig.from_dict(data, config=config)

        assert restored.rotations == pytest.approx(rig.rotations)
        assert restored.target("r_leg_chain") == pytest.approx([30.0, 80.0])
        assert restored.is_chain_enabled("l_arm_chain") is False
        assert restored.to_dict()["solvers"] == {"r_leg_chain": "jacobian"}
        assert restored.origin == pytest.approx(rig.origin)

    def test_reset(self, rig):
        rig.set_rotation("neck", 0.5)
        rig.set_target("l_arm_chain", (0.0, 0.0))
        rig.reset()
        assert rig.rotation("neck") == 0.0
        assert rig.target("l_arm_chain") is None

    def test_custom_definition_and_solver(self, config):
        skeleton = SkeletonDef.from_dict(small_data())
        rig = SkeletonRig(definition=skeleton, config=config, solver=IKSolver(config, seed=3), origin=(0, 0))
        rig.set_target("leg", (20.0, 60.0))
        results = rig.update()
        assert results["leg"].error < 1.0

    @pytest.mark.parametrize("action", [
        lambda rig: rig.toggle_chain("l_arm_chain"),
        lambda rig: rig.set_chain_enabled("l_arm_chain", False),
        lambda rig: rig.snapshot(),
    ])
    def test_chain_state_waits_for_solve_pass(self, rig, action):
        finished = threading.Event()

        def run():
            action(rig)
            finished.set()

        worker = threading.Thread(target=run)
        with rig._lock:
            worker.start()
            assert not finished.wait(0.1)
        worker.join(timeout=2.0)
        assert finished.is_set()
