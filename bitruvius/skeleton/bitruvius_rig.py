"""Built-in Bitruvius figure: 22-joint planar humanoid.

Pivots are in screen units with +y pointing down. Limits and poses are in
degrees, as authored; ``load_bitruvius_rig`` converts them on load.
"""

from typing import Dict

from .definition import SkeletonDef


# Joint id -> (parent, pivot offset, color)
BITRUVIUS_JOINTS = {
    "root": (None, (0, 0), "#FF6B6B"),
    "torso": ("root", (0, -58), "#4ECDC4"),
    "waist": ("torso", (0, 58), "#45B7D1"),
    "neck": ("torso", (0, -58), "#96CEB4"),
    "head": ("neck", (0, -24), "#FFEAA7"),
    "nose": ("head", (0, -8), "#DDA0DD"),
    "l_collar": ("torso", (-32, -13), "#98D8C8"),
    "r_collar": ("torso", (32, -13), "#98D8C8"),
    "l_shoulder": ("l_collar", (-22, 0), "#FFB6C1"),
    "r_shoulder": ("r_collar", (22, 0), "#FFB6C1"),
    "l_elbow": ("l_shoulder", (-30, 0), "#87CEEB"),
    "r_elbow": ("r_shoulder", (30, 0), "#87CEEB"),
    "l_wrist": ("l_elbow", (-25, 0), "#DDA0DD"),
    "r_wrist": ("r_elbow", (25, 0), "#DDA0DD"),
    "l_hip": ("waist", (-20, 0), "#F4A460"),
    "r_hip": ("waist", (20, 0), "#F4A460"),
    "l_knee": ("l_hip", (0, 40), "#DEB887"),
    "r_knee": ("r_hip", (0, 40), "#DEB887"),
    "l_ankle": ("l_knee", (0, 35), "#BC8F8F"),
    "r_ankle": ("r_knee", (0, 35), "#BC8F8F"),
    "l_toe": ("l_ankle", (0, 12), "#F5DEB3"),
    "r_toe": ("r_ankle", (0, 12), "#F5DEB3"),
}


# Joint id -> (min, max) degrees
BITRUVIUS_LIMITS = {
    "neck": (-45, 45),
    "head": (-30, 30),
    "l_shoulder": (-180, 180),
    "r_shoulder": (-180, 180),
    "l_elbow": (0, 150),
    "r_elbow": (0, 150),
    "l_wrist": (-90, 90),
    "r_wrist": (-90, 90),
    "l_hip": (-30, 30),
    "r_hip": (-30, 30),
    "l_knee": (0, 150),
    "r_knee": (0, 150),
    "l_ankle": (-45, 45),
    "r_ankle": (-45, 45),
}


BITRUVIUS_CHAINS = {
    "l_arm_chain": {
        "joints": ["l_shoulder", "l_elbow", "l_wrist"],
        "effector": "l_wrist",
        "priority": 1,
        "stretch_ratio": 1.1,
        "curve_strength": 0.5,
        "label": "Left Arm",
    },
    "r_arm_chain": {
        "joints": ["r_shoulder", "r_elbow", "r_wrist"],
        "effector": "r_wrist",
        "priority": 1,
        "stretch_ratio": 1.1,
        "curve_strength": 0.5,
        "label": "Right Arm",
    },
    "l_leg_chain": {
        "joints": ["l_hip", "l_knee", "l_ankle"],
        "effector": "l_ankle",
        "priority": 2,
        "stretch_ratio": 1.05,
        "curve_strength": 0.3,
        "label": "Left Leg",
    },
    "r_leg_chain": {
        "joints": ["r_hip", "r_knee", "r_ankle"],
        "effector": "r_ankle",
        "priority": 2,
        "stretch_ratio": 1.05,
        "curve_strength": 0.3,
        "label": "Right Leg",
    },
}

BITRUVIUS_PRIORITY_ORDER = ["l_arm_chain", "r_arm_chain", "l_leg_chain", "r_leg_chain"]


# Pose name -> joint id -> degrees (joints left out are 0)
BITRUVIUS_POSES = {
    "default": {
        "l_shoulder": 45, "r_shoulder": -45,
        "l_elbow": 30, "r_elbow": 30,
        "l_hip": 10, "r_hip": -10,
        "l_knee": 5, "r_knee": 5,
    },
    "T-pose": {
        "l_shoulder": 90, "r_shoulder": -90,
    },
    "walk": {
        "torso": 5, "waist": -5, "neck": -5,
        "l_shoulder": 30, "r_shoulder": -30,
        "l_elbow": 45, "r_elbow": 20,
        "l_wrist": -10, "r_wrist": 10,
        "l_hip": 20, "r_hip": -20,
        "l_knee": 60, "r_knee": 10,
        "l_ankle": -15, "r_ankle": 15,
        "l_toe": 10, "r_toe": -10,
    },
}


def bitruvius_data() -> Dict:
    """Figure data in the authored (degrees) schema accepted by ``SkeletonDef.from_dict``."""
    return {
        "name": "bitruvius",
        "joints": {
            jid: {"parent": parent, "pivot": list(pivot), "color": color, "label": jid}
            for jid, (parent, pivot, color) in BITRUVIUS_JOINTS.items()
        },
        "limits": {jid: {"min": lo, "max": hi} for jid, (lo, hi) in BITRUVIUS_LIMITS.items()},
        "chains": {cid: dict(chain) for cid, chain in BITRUVIUS_CHAINS.items()},
        "priority_order": list(BITRUVIUS_PRIORITY_ORDER),
        "poses": {name: dict(pose) for name, pose in BITRUVIUS_POSES.items()},
        "initial_pose": "default",
    }


def load_bitruvius_rig() -> SkeletonDef:
    """Build the built-in figure definition."""
    return SkeletonDef.from_dict(bitruvius_data())
