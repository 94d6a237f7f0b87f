"""Exception types raised by the kinematics engine"""


class KinematicsError(Exception):
    """Base class for all engine errors."""


class UnknownJointError(KinematicsError, KeyError):
    """A joint or chain identifier is not part of the hierarchy."""

    def __init__(self, joint_id):
        self.joint_id = joint_id
        super().__init__(joint_id)

    def __str__(self) -> str:
        return f"Unknown joint or chain: {self.joint_id!r}"


class SingularMatrixError(KinematicsError):
    """A transform could not be inverted."""


class SkeletonDefinitionError(KinematicsError, ValueError):
    """A skeleton definition is malformed (bad parent, cycle, broken chain)."""
