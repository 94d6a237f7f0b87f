"""Shared fixtures for the engine tests."""

import math
from pathlib import Path

import numpy as np
import pytest

from bitruvius.core import Config
from bitruvius.kinematics import ChainSpec, Hierarchy, IKSettings


REPO_ROOT = Path(__file__).resolve().parent.parent


@pytest.fixture
def config():
    """Config loaded fresh from the repository's config.yaml."""
    cfg = Config(str(REPO_ROOT / "config.yaml"))
    cfg.reload()
    return cfg


def make_chain(lengths, origin=(0.0, 0.0), limits=None, locked=(), name="test_chain", **kwargs):
    """
    Straight chain along +X: joint i sits at the tip of joint i-1 and the
    effector at the tip of the last joint.
    """
    ids = [f"j{i}" for i in range(len(lengths))]
    parents = {}
    offsets = {}
    for i, jid in enumerate(ids):
        parents[jid] = ids[i - 1] if i > 0 else None
        offsets[jid] = np.array([lengths[i - 1], 0.0]) if i > 0 else np.zeros(2)
    hierarchy = Hierarchy(parents=parents, offsets=offsets)
    return ChainSpec(
        hierarchy=hierarchy,
        joint_ids=tuple(ids),
        tip=(lengths[-1], 0.0),
        origin=origin,
        limits=limits or {},
        locked=frozenset(locked),
        name=name,
        **kwargs
    )


@pytest.fixture
def three_link():
    return make_chain([60.0, 50.0, 40.0])


@pytest.fixture
def two_link():
    return make_chain([100.0, 80.0])


@pytest.fixture
def zero_angles():
    def _zeros(chain):
        return {jid: 0.0 for jid in chain.joint_ids}
    return _zeros


@pytest.fixture
def generous_settings():
    """Iteration budgets large enough for every solver to settle."""
    return IKSettings(
        iterations=200,
        threshold=0.5,
        max_iterations=50,
        tolerance=0.01,
    )


@pytest.fixture
def rng():
    return np.random.default_rng(1234)


def segment_lengths(points):
    return [float(np.linalg.norm(b - a)) for a, b in zip(points[:-1], points[1:])]


def deg(value):
    return math.radians(value)
