"""FABRIK solvers - basic and constrained/biased

Both work on world points and convert the solved points back into local
angles through ``ChainSpec.angles_from_points``.
"""

import math
from typing import Mapping, Optional, Sequence
import numpy as np

from bitruvius.core.math2d import (
    PointLike, clamp, distance, from_angle, heading, length, normalize_angle, rotate, vec2
)
from bitruvius.kinematics.chain import ChainSpec, IKResult, IKSettings
from bitruvius.kinematics.forward import JointId


MIN_SEGMENT = 1e-4


def soft_reach_target(
    root: np.ndarray,
    target: PointLike,
    total_length: float,
    stretch_ratio: float = 1.1,
    soft_ratio: float = 0.12
) -> np.ndarray:
    """
    Pull a far target back along the root->target ray.

    Past ``total * stretch_ratio - total * soft_ratio`` the overflow is
    compressed exponentially, so the returned point approaches the stretch
    limit smoothly and never jumps as the target is dragged away.
    """
    target = vec2(target)
    if total_length <= 0.0:
        return target

    to_target = target - root
    dist = length(to_target)
    soft_dist = total_length * soft_ratio
    soft_threshold = total_length * stretch_ratio - soft_dist

    if dist <= soft_threshold or soft_dist <= 0.0:
        return target

    overflow = dist - soft_threshold
    damped = soft_dist * (1.0 - math.exp(-overflow / soft_dist))
    return root + to_target * ((soft_threshold + damped) / dist)


def _reach_to_target(points: np.ndarray, target: np.ndarray, lengths: Sequence[float]) -> None:
    """Pin the effector on the target and walk back toward the root."""
    points[-1] = target
    for i in range(len(points) - 2, -1, -1):
        offset = points[i] - points[i + 1]
        dist = length(offset)
        if dist > MIN_SEGMENT:
            points[i] = points[i + 1] + offset * (lengths[i] / dist)


def _reach_to_base_projected(
    points: np.ndarray,
    base: np.ndarray,
    lengths: Sequence[float],
    chain: ChainSpec,
    base_angle: float,
    angles: Mapping[JointId, float],
    use_limits: bool = True
) -> None:
    """
    Re-pin the root and walk outward to the effector.

    Locked joints are held at their current local angle. With ``use_limits``
    every other bone is projected back inside its joint limits.
    """
    rest = chain.rest_angles
    points[0] = base

    for i, jid in enumerate(chain.joint_ids):
        if i == 0:
            parent_frame = base_angle
        else:
            parent_frame = heading(points[i] - points[i - 1]) - rest[i - 1]

        if jid in chain.locked:
            local = angles.get(jid, 0.0)
            points[i + 1] = points[i] + from_angle(parent_frame + local + rest[i], lengths[i])
            continue

        offset = points[i + 1] - points[i]
        dist = length(offset)
        if dist <= MIN_SEGMENT:
            continue

        candidate = points[i] + offset * (lengths[i] / dist)

        limit = chain.limits.get(jid) if use_limits else None
        if limit is not None:
            local = normalize_angle(heading(candidate - points[i]) - rest[i] - parent_frame)
            if local < limit[0] or local > limit[1]:
                local = clamp(local, limit[0], limit[1])
                candidate = points[i] + from_angle(parent_frame + local + rest[i], lengths[i])

        points[i + 1] = candidate


def solve_fabrik(
    chain: ChainSpec,
    target: PointLike,
    angles: Mapping[JointId, float],
    settings: IKSettings
) -> IKResult:
    """
    Plain FABRIK: alternate target/base passes until the effector is within
    ``settings.threshold``. Locked joints hold their angle during the passes;
    limits are only applied when writing angles back.
    """
    if not chain.is_solvable:
        return IKResult.unchanged(angles)

    target = vec2(target)
    points = chain.points(angles)
    base = points[0].copy()
    base_angle = chain.base_angle(angles)
    lengths = chain.lengths

    error = distance(points[-1], target)
    if error < settings.threshold:
        return IKResult(dict(angles), error, iterations=0, converged=True)

    iterations = 0
    for _ in range(settings.iterations):
        iterations += 1
        _reach_to_target(points, target, lengths)
        _reach_to_base_projected(points, base, lengths, chain, base_angle, angles, use_limits=False)
        if distance(points[-1], target) < settings.threshold:
            break

    solved = chain.angles_from_points(points, angles)
    error = chain.error(solved, target)
    return IKResult(
        angles=solved,
        error=error,
        iterations=iterations,
        converged=error < settings.threshold
    )


def solve_fabrik_constrained(
    chain: ChainSpec,
    target: PointLike,
    angles: Mapping[JointId, float],
    settings: IKSettings,
    rng: Optional[np.random.Generator] = None
) -> IKResult:
    """
    Production FABRIK with soft reach, bend bias, limits and stagnation escape.

    Args:
        chain: Chain to solve (``stretch_ratio``, ``curve_strength`` and
            ``bend_direction`` are read from it)
        target: World target for the effector
        angles: Current local angles
        settings: ``max_iterations``, ``tolerance`` and perturbation tuning
        rng: Random source for the stagnation perturbation; a fixed-seed
            generator is used when omitted so results stay reproducible

    Returns:
        IKResult built from the best candidate seen. ``error_history`` holds the
        effector error of the starting pose and of the angles extracted after
        every completed pass.
    """
    if not chain.is_solvable:
        return IKResult.unchanged(angles)

    if rng is None:
        rng = np.random.default_rng(0)

    points = chain.points(angles)
    base = points[0].copy()
    lengths = chain.lengths
    tolerance = settings.tolerance
    cap = settings.max_iterations

    goal = soft_reach_target(
        base, target, float(np.sum(lengths)), chain.stretch_ratio, settings.soft_reach_ratio
    )

    best_error = distance(points[-1], goal)
    history = [best_error]
    if best_error < tolerance:
        return IKResult(dict(angles), best_error, 0, True, history, goal)

    if chain.bend_direction is not None and len(points) >= 3:
        to_goal = goal - base
        goal_dist = length(to_goal)
        if goal_dist > 0.1:
            bend = chain.bend_direction * chain.curve_strength * settings.bend_angle
            points[1] = base + rotate(to_goal, bend) / goal_dist * lengths[0]

    base_angle = chain.base_angle(angles)
    best_angles = dict(angles)
    error = distance(points[-1], goal)
    iterations = 0

    for iteration in range(cap):
        if error < tolerance:
            break

        if (iteration > settings.stagnation_start
                and iteration % settings.stagnation_interval == 0
                and error > tolerance * 5):
            temperature = settings.perturbation_scale * (1.0 - iteration / cap)
            interior = len(points) - 2
            if interior > 0:
                points[1:-1] += (rng.random((interior, 2)) - 0.5) * temperature

        _reach_to_target(points, goal, lengths)
        _reach_to_base_projected(points, base, lengths, chain, base_angle, angles)
        iterations += 1

        # Score what will be written back, not the raw points
        candidate = chain.angles_from_points(points, angles)
        error = chain.error(candidate, goal)
        history.append(error)
        if error < best_error:
            best_error = error
            best_angles = candidate

    return IKResult(
        angles=best_angles,
        error=best_error,
        iterations=iterations,
        converged=best_error < tolerance,
        error_history=history,
        effective_target=goal
    )
