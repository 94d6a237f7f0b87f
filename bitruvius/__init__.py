"""Bitruvius - planar hierarchical kinematics (FK and IK) engine"""

__version__ = "0.1.0"
