"""Closed-form two-segment IK (law of cosines)"""

import math
from typing import Mapping, Optional

from bitruvius.core.logging import get_logger
from bitruvius.core.math2d import PointLike, clamp, from_angle, heading, length, vec2
from bitruvius.kinematics.chain import ChainSpec, IKResult, IKSettings
from bitruvius.kinematics.forward import JointId


logger = get_logger("ik.analytical")


def solve_analytical(
    chain: ChainSpec,
    target: PointLike,
    angles: Mapping[JointId, float],
    settings: Optional[IKSettings] = None
) -> IKResult:
    """
    Solve a two-segment chain without iterating.

    - Target beyond ``l1 + l2``: first segment points at the target, second
      continues straight.
    - Target closer than ``|l1 - l2|``: both joint angles are zeroed.
    - Otherwise the elbow angle comes from the law of cosines and the base
      angle from ``atan2``; the chain's ``bend_direction`` (default +1)
      picks which of the two mirror solutions is used.

    Chains with any other number of solvable joints are returned unchanged.
    """
    settings = settings or IKSettings()
    if chain.size != 2:
        logger.debug(f"Analytical solver needs 2 joints, chain {chain.name!r} has {chain.size}")
        return IKResult.unchanged(angles)

    target = vec2(target)
    first, second = chain.joint_ids
    l1, l2 = (float(v) for v in chain.lengths)
    root = chain.points(angles)[0]
    to_target = target - root
    dist = length(to_target)

    if dist < abs(l1 - l2) or dist < 1e-9 or min(l1, l2) < 1e-9:
        solved = dict(angles)
        solved[first] = chain.clamp_angle(first, 0.0)
        solved[second] = chain.clamp_angle(second, 0.0)
        error = chain.error(solved, target)
        return IKResult(solved, error, iterations=0, converged=error < settings.threshold)

    base = heading(to_target)
    if dist > l1 + l2:
        upper = base
        lower = base
    else:
        bend = chain.bend_direction or 1
        cos_elbow = clamp((dist * dist - l1 * l1 - l2 * l2) / (2.0 * l1 * l2), -1.0, 1.0)
        cos_base = clamp((l1 * l1 + dist * dist - l2 * l2) / (2.0 * l1 * dist), -1.0, 1.0)
        upper = base - bend * math.acos(cos_base)
        lower = upper + bend * math.acos(cos_elbow)

    mid = root + from_angle(upper, l1)
    end = mid + from_angle(lower, l2)
    solved = chain.angles_from_points([root, mid, end], angles)

    error = chain.error(solved, target)
    return IKResult(solved, error, iterations=0, converged=error < settings.threshold)
