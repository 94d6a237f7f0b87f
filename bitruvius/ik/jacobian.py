"""Damped Jacobian-transpose solver with finite-difference derivatives"""

from typing import Mapping
import numpy as np

from bitruvius.core.math2d import PointLike, angle_difference, clamp, cross2, length, vec2
from bitruvius.kinematics.chain import ChainSpec, IKResult, IKSettings
from bitruvius.kinematics.forward import JointId


def solve_jacobian(
    chain: ChainSpec,
    target: PointLike,
    angles: Mapping[JointId, float],
    settings: IKSettings
) -> IKResult:
    """
    Iteratively nudge each joint along its column of the Jacobian.

    Runs up to ``settings.jacobian_iterations`` passes. In each pass every free
    joint is perturbed by ``settings.epsilon`` to estimate d(effector)/d(angle).
    The joint then turns by
    ``step_size * |e . J| / (|J|^2 + damping^2)``, signed by the cross product
    of its lever arm (joint->effector) with the error, and capped at
    ``max_step``. The remaining error is updated linearly between joints so
    later joints do not re-correct what earlier ones already fixed.
    """
    if not chain.is_solvable:
        return IKResult.unchanged(angles)

    target = vec2(target)
    current = dict(angles)
    free = [(i, jid) for i, jid in enumerate(chain.joint_ids) if jid not in chain.locked]
    eps = settings.epsilon
    damping_sq = settings.damping * settings.damping

    error = chain.error(current, target)
    iterations = 0

    for _ in range(settings.jacobian_iterations):
        if error < settings.threshold:
            break
        iterations += 1

        points = chain.points(current)
        end = points[-1]

        columns = []
        for i, jid in free:
            nudged = dict(current)
            nudged[jid] = current.get(jid, 0.0) + eps
            columns.append((i, jid, (chain.effector(nudged) - end) / eps))

        residual = target - end
        for i, jid, column in columns:
            lever = end - points[i]
            norm_sq = float(np.dot(column, column))
            if length(lever) < 1e-9 or norm_sq < 1e-12:
                continue

            magnitude = abs(float(np.dot(residual, column))) / (norm_sq + damping_sq)
            direction = np.sign(cross2(lever, residual))
            step = clamp(settings.step_size * magnitude * direction, -settings.max_step, settings.max_step)

            old = current.get(jid, 0.0)
            new = chain.clamp_angle(jid, old + step)
            current[jid] = new
            residual = residual - column * angle_difference(old, new)

        error = chain.error(current, target)

    return IKResult(
        angles=current,
        error=error,
        iterations=iterations,
        converged=error < settings.threshold
    )
