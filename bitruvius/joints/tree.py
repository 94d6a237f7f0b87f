"""Joint Tree - editable arena of joints with FK update and damped CCD"""

from typing import Dict, List, Optional
import numpy as np

from bitruvius.core import get_logger, SkeletonDefinitionError, UnknownJointError
from bitruvius.core.math2d import (
    PointLike, clamp, distance, invert_affine, length, lerp,
    normalize_angle, signed_angle, transform_point, vec2
)
from bitruvius.kinematics.chain import ChainSpec
from bitruvius.kinematics.forward import Hierarchy, WorldTransform, world_transform, world_transforms
from .joint import Joint


MIN_LEVER = 1e-3
HIT_THRESHOLD = 20.0


class JointTree:
    """
    Joints stored by integer id with parent index and ordered child lists.

    The root's offset is its position relative to ``origin`` and its angle
    rotates the whole tree. Every other joint's offset is expressed in its
    parent's frame.
    """

    def __init__(self, root_position: PointLike = (0.0, 0.0), root_length: float = 60.0, root_name: str = "Root"):
        self.logger = get_logger("joints.tree")
        self.origin = np.zeros(2)
        self._joints: Dict[int, Joint] = {}
        self._next_id = 0
        self.root_id = self._create(root_name, root_position, root_length, parent=None).id

    def _create(self, name: str, offset: PointLike, length: float, parent: Optional[int], **kwargs) -> Joint:
        joint = Joint(id=self._next_id, name=name, offset=vec2(offset), length=float(length), parent=parent, **kwargs)
        self._joints[joint.id] = joint
        self._next_id += 1
        if parent is not None:
            self._joints[parent].children.append(joint.id)
        return joint

    # ---- Structure ----

    def __contains__(self, joint_id: int) -> bool:
        return joint_id in self._joints

    def __len__(self) -> int:
        return len(self._joints)

    @property
    def root(self) -> Joint:
        return self._joints[self.root_id]

    def joint(self, joint_id: int) -> Joint:
        try:
            return self._joints[joint_id]
        except KeyError:
            raise UnknownJointError(joint_id) from None

    def add_joint(
        self,
        parent_id: Optional[int] = None,
        length: float = 40.0,
        name: Optional[str] = None,
        offset: Optional[PointLike] = None,
        **kwargs
    ) -> Joint:
        """
        Attach a new joint.

        Args:
            parent_id: Parent joint (defaults to the deepest joint)
            length: Bone length of the new joint
            name: Display name (defaults to ``Joint_<id>``)
            offset: Pivot in the parent's frame (defaults to the parent's tip)
            **kwargs: Extra ``Joint`` fields (constraints, ik_weight, ...)

        Returns:
            The new joint
        """
        parent = self.joint(parent_id) if parent_id is not None else self.deepest_joint()
        if offset is None:
            offset = (parent.length, 0.0)
        name = name or f"Joint_{self._next_id}"
        joint = self._create(name, offset, length, parent=parent.id, **kwargs)
        self.logger.debug(f"Added joint {joint.name!r} (id={joint.id}) under {parent.name!r}")
        return joint

    def remove_joint(self, joint_id: int) -> bool:
        """
        Remove a joint and hand its children to its parent.

        Children take the removed joint's slot in the parent's child list, in
        order, and keep their local offsets. The root cannot be removed.

        Returns:
            True if a joint was removed
        """
        joint = self.joint(joint_id)
        if joint.parent is None:
            return False

        parent = self._joints[joint.parent]
        index = parent.children.index(joint_id)
        parent.children[index:index + 1] = joint.children
        for child_id in joint.children:
            self._joints[child_id].parent = parent.id

        del self._joints[joint_id]
        self.logger.debug(f"Removed joint {joint.name!r} (id={joint_id})")
        return True

    def path_to(self, joint_id: int) -> List[int]:
        """Joint ids from the root down to ``joint_id`` (inclusive)."""
        path = []
        current: Optional[int] = joint_id
        while current is not None:
            path.append(current)
            current = self.joint(current).parent
        path.reverse()
        return path

    def all_joints(self) -> List[Joint]:
        """Depth-first, children in order."""
        result = []
        stack = [self.root_id]
        while stack:
            joint = self._joints[stack.pop()]
            result.append(joint)
            stack.extend(reversed(joint.children))
        return result

    @property
    def joint_count(self) -> int:
        return len(self._joints)

    def chain_depth(self, joint_id: Optional[int] = None) -> int:
        """Longest number of bones below a joint (0 for a leaf)."""
        joint = self.joint(self.root_id if joint_id is None else joint_id)
        if not joint.children:
            return 0
        return 1 + max(self.chain_depth(c) for c in joint.children)

    def deepest_joint(self) -> Joint:
        """Leaf farthest from the root; the first one found wins ties."""
        best = self.root
        best_depth = 0
        stack = [(self.root_id, 0)]
        while stack:
            jid, depth = stack.pop()
            if depth > best_depth:
                best, best_depth = self._joints[jid], depth
            for child in reversed(self._joints[jid].children):
                stack.append((child, depth + 1))
        return best

    def chain_length(self, joint_id: Optional[int] = None) -> float:
        """Sum of bone lengths in the subtree."""
        joint = self.joint(self.root_id if joint_id is None else joint_id)
        return joint.length + sum(self.chain_length(c) for c in joint.children)

    def joints_at_depth(self, depth: int) -> List[Joint]:
        return [j for j in self.all_joints() if len(self.path_to(j.id)) - 1 == depth]

    def hierarchy(self) -> Hierarchy:
        """Immutable snapshot of the current structure for the FK evaluator."""
        return Hierarchy(
            parents={jid: j.parent for jid, j in self._joints.items()},
            offsets={jid: j.offset.copy() for jid, j in self._joints.items()}
        )

    # ---- Kinematics ----

    def angles(self) -> Dict[int, float]:
        return {jid: j.angle for jid, j in self._joints.items()}

    def world_transform(self, joint_id: int) -> WorldTransform:
        self.joint(joint_id)
        return world_transform(self.hierarchy(), joint_id, self.angles(), self.origin)

    def world_position(self, joint_id: int) -> np.ndarray:
        return self.world_transform(joint_id).position

    def world_angle(self, joint_id: int) -> float:
        return self.world_transform(joint_id).angle

    def end_effector_position(self, joint_id: int) -> np.ndarray:
        """World position of a joint's tip, ``(length, 0)`` in its frame."""
        joint = self.joint(joint_id)
        return transform_point(self.world_transform(joint_id).matrix, (joint.length, 0.0))

    def set_world_angle(self, joint_id: int, angle: float) -> None:
        """Set a joint's local angle so that its world orientation equals ``angle``."""
        joint = self.joint(joint_id)
        if joint.parent is not None:
            angle = angle - self.world_angle(joint.parent)
        if not joint.angle_wrapping:
            angle = normalize_angle(angle)
        joint.snap_to(angle)

    def world_to_local(self, joint_id: int, point: PointLike) -> np.ndarray:
        """
        Express a world point in a joint's local frame.

        Raises:
            SingularMatrixError: if the joint's transform is not invertible
        """
        inverse = invert_affine(self.world_transform(joint_id).matrix)
        return transform_point(inverse, point)

    def joint_at_position(self, point: PointLike, threshold: float = HIT_THRESHOLD) -> Optional[Joint]:
        """First joint (depth-first) whose pivot is within ``threshold`` of ``point``."""
        point = vec2(point)
        transforms = world_transforms(self.hierarchy(), self.angles(), self.origin)
        for joint in self.all_joints():
            if distance(transforms[joint.id].position, point) < threshold:
                return joint
        return None

    def update_fk(self, delta_time: float = 0.0) -> None:
        for joint in self.all_joints():
            joint.update_fk(delta_time)

    def update_ik(
        self,
        effector_id: int,
        target: PointLike,
        iterations: int = 10,
        threshold: float = 0.1
    ) -> int:
        """
        Damped CCD from an effector joint up to the root.

        Each IK-enabled joint on the way turns toward the target by the
        signed angle between joint->tip and joint->target, limited by its
        constraints, scaled by both joints' ``ik_weight`` and eased in by
        ``1 - damping``. The tip is re-evaluated after every joint.

        Args:
            effector_id: Joint whose tip should reach the target
            target: World target
            iterations: Maximum number of sweeps
            threshold: Stop distance

        Returns:
            Number of sweeps performed
        """
        effector = self.joint(effector_id)
        if effector.parent is None or not effector.ik_enabled or len(self._joints) < 2:
            return 0

        target = vec2(target)
        path = list(reversed(self.path_to(effector_id)))

        if distance(self.end_effector_position(effector_id), target) < threshold:
            return 0

        sweeps = 0
        for _ in range(iterations):
            sweeps += 1
            for jid in path:
                joint = self._joints[jid]
                if not joint.ik_enabled:
                    continue

                pivot = self.world_position(jid)
                to_end = self.end_effector_position(effector_id) - pivot
                to_target = target - pivot
                if length(to_end) < MIN_LEVER or length(to_target) < MIN_LEVER:
                    continue

                rotation = signed_angle(to_end, to_target)
                if joint.constraints.enabled:
                    constrained = clamp(
                        joint.angle + rotation,
                        joint.constraints.min_angle,
                        joint.constraints.max_angle
                    )
                    rotation = constrained - joint.angle

                rotation *= joint.ik_weight * effector.ik_weight
                joint.target_angle = joint.angle + rotation
                joint.angle = lerp(joint.angle, joint.target_angle, 1.0 - joint.damping)

            if distance(self.end_effector_position(effector_id), target) < threshold:
                break

        return sweeps

    def chain_spec(self, effector_id: Optional[int] = None, name: str = "joint_tree") -> ChainSpec:
        """
        Flat solver view of the path from the root to an effector.

        The effector point is the effector joint's tip. IK-disabled joints
        are locked; enabled constraints become limits.
        """
        effector = self.joint(effector_id) if effector_id is not None else self.deepest_joint()
        path = self.path_to(effector.id)
        joints = [self._joints[jid] for jid in path]
        return ChainSpec(
            hierarchy=self.hierarchy(),
            joint_ids=tuple(path),
            tip=(effector.length, 0.0),
            origin=self.origin,
            limits={
                j.id: (j.constraints.min_angle, j.constraints.max_angle)
                for j in joints if j.constraints.enabled
            },
            locked=frozenset(j.id for j in joints if not j.ik_enabled),
            name=name
        )

    def reset(self) -> None:
        for joint in self._joints.values():
            joint.reset()

    # ---- Render / persistence ----

    def snapshot(self) -> List[dict]:
        """Per-joint world placement and flags, depth-first."""
        transforms = world_transforms(self.hierarchy(), self.angles(), self.origin)
        result = []
        for joint in self.all_joints():
            transform = transforms[joint.id]
            tip = transform_point(transform.matrix, (joint.length, 0.0))
            result.append({
                "id": joint.id,
                "name": joint.name,
                "parent": joint.parent,
                "position": [transform.x, transform.y],
                "tip": [float(tip[0]), float(tip[1])],
                "angle": transform.angle,
                "fk_enabled": joint.fk_enabled,
                "ik_enabled": joint.ik_enabled,
                "constraints": joint.constraints.to_dict() if joint.constraints.enabled else None,
                "color": joint.color,
            })
        return result

    def to_dict(self) -> dict:
        return {
            "origin": [float(self.origin[0]), float(self.origin[1])],
            "root": self.root_id,
            "next_id": self._next_id,
            "joints": [j.to_dict() for j in self.all_joints()],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "JointTree":
        joints = [Joint.from_dict(j) for j in data.get("joints", [])]
        if not joints:
            raise SkeletonDefinitionError("Joint tree data has no joints")

        tree = cls.__new__(cls)
        tree.logger = get_logger("joints.tree")
        tree.origin = vec2(data.get("origin", (0.0, 0.0)))
        tree._joints = {j.id: j for j in joints}
        tree.root_id = int(data.get("root", joints[0].id))
        tree._next_id = int(data.get("next_id", max(tree._joints) + 1))

        for joint in joints:
            if joint.parent is not None and joint.parent not in tree._joints:
                raise SkeletonDefinitionError(f"Joint {joint.id} has unknown parent {joint.parent}")
        return tree
