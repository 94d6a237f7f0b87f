"""Cyclic Coordinate Descent over a flat chain"""

from typing import Mapping

from bitruvius.core.math2d import PointLike, length, signed_angle, vec2
from bitruvius.kinematics.chain import ChainSpec, IKResult, IKSettings
from bitruvius.kinematics.forward import JointId


MIN_LEVER = 1e-3


def solve_ccd(
    chain: ChainSpec,
    target: PointLike,
    angles: Mapping[JointId, float],
    settings: IKSettings
) -> IKResult:
    """
    Rotate joints tail-to-head so the effector swings toward the target.

    Each joint turns by the signed angle between joint->effector and
    joint->target, scaled by ``settings.strength`` and clamped to its limits.
    The effector is re-evaluated after every joint, and the loop stops once
    it is closer than ``settings.threshold``.
    """
    if not chain.is_solvable:
        return IKResult.unchanged(angles)

    target = vec2(target)
    current = dict(angles)
    error = chain.error(current, target)
    if error < settings.threshold:
        return IKResult(current, error, iterations=0, converged=True)

    iterations = 0
    for _ in range(settings.iterations):
        iterations += 1

        for i in reversed(range(chain.size)):
            jid = chain.joint_ids[i]
            if jid in chain.locked:
                continue

            points = chain.points(current)
            to_end = points[-1] - points[i]
            to_target = target - points[i]
            if length(to_end) < MIN_LEVER or length(to_target) < MIN_LEVER:
                continue

            rotation = signed_angle(to_end, to_target) * settings.strength
            current[jid] = chain.clamp_angle(jid, current.get(jid, 0.0) + rotation)

        error = chain.error(current, target)
        if error < settings.threshold:
            break

    return IKResult(
        angles=current,
        error=error,
        iterations=iterations,
        converged=error < settings.threshold
    )
