#!/usr/bin/env python3
"""
Bitruvius IK - Headless Simulation Driver

Builds the skeleton rig and the joint chain from config.yaml, sweeps IK
targets around them for a number of frames and reports solve statistics.
The final state can be written out as YAML.
"""

import argparse
import math
import sys
from pathlib import Path
from typing import Optional

import numpy as np
import yaml

from bitruvius.core import Config, FrameClock, FrameTimer, setup_logging, get_logger
from bitruvius.ik import SolverKind
from bitruvius.joints import JointChain
from bitruvius.skeleton import SkeletonRig


def parse_args() -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Run the planar FK/IK engine headless"
    )
    parser.add_argument(
        "--config", "-c",
        type=str,
        default="config.yaml",
        help="Path to configuration file"
    )
    parser.add_argument(
        "--frames", "-n",
        type=int,
        help="Number of frames to simulate (overrides config)"
    )
    parser.add_argument(
        "--solver", "-s",
        type=str,
        choices=[kind.value for kind in SolverKind],
        help="IK solver for the rig chains (overrides config)"
    )
    parser.add_argument(
        "--save",
        type=str,
        help="Write the final rig and chain state to this YAML file"
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging"
    )
    return parser.parse_args()


def main() -> int:
    """Main application entry point."""
    args = parse_args()

    config_path = Path(args.config)
    if not config_path.is_absolute() and not config_path.exists():
        config_path = Path(__file__).parent / config_path

    try:
        config = Config(str(config_path))
    except FileNotFoundError:
        print(f"Error: Config file not found: {config_path}")
        return 1

    log_level = "DEBUG" if args.debug else config.get("app.log_level", "INFO")
    setup_logging(level=log_level)
    logger = get_logger("main")

    logger.info("=" * 50)
    logger.info(f"{config.get('app.name', 'Bitruvius IK')} v{config.get('app.version', '0.1.0')}")
    logger.info("=" * 50)

    if args.solver:
        config.set("ik.solver", args.solver)
        logger.info(f"Solver override: {args.solver}")

    if args.frames is not None:
        config.set("simulation.frames", args.frames)

    return run_headless(config, args.save)


def run_headless(config: Config, save_path: Optional[str] = None) -> int:
    """Simulate the rig and the joint chain with sweeping targets."""
    logger = get_logger("main")

    rig = SkeletonRig(config=config)
    chain = JointChain(config=config)

    sim = config.simulation
    frames = int(sim.get("frames", 240))
    radius = float(sim.get("sweep_radius", 80.0))
    clock = FrameClock(target_fps=sim.get("fps", 60), fixed_dt=sim.get("fixed_dt"))
    rig_timer = FrameTimer()
    chain_timer = FrameTimer()

    # Sweep each chain's target around where its effector starts
    anchors = {
        cid: rig.world_transform(rig.definition.chain(cid).effector).position
        for cid in rig.definition.solve_order()
    }
    chain_anchor = chain.end_effector_position()

    logger.info(f"Simulating {frames} frames ({len(anchors)} rig chains + joint chain)")

    for _ in range(frames):
        frame = clock.tick()
        phase = frame.timestamp * 2.0 * math.pi * 0.25

        for i, (cid, anchor) in enumerate(anchors.items()):
            offset = np.array([math.cos(phase + i), math.sin(phase + i)]) * radius * 0.5
            rig.set_target(cid, anchor + offset)

        with rig_timer:
            results = rig.update()

        chain.target = chain_anchor + np.array([-radius, radius * math.sin(phase)])
        with chain_timer:
            chain.update(frame.delta_time)

        if frame.frame_number % 60 == 0:
            errors = ", ".join(f"{cid}={r.error:.2f}" for cid, r in results.items())
            logger.info(f"Frame {frame.frame_number}: {errors}")

        clock.wait_for_next_frame()

    logger.info(
        f"Rig solve: avg {rig_timer.average_time * 1000:.2f} ms, "
        f"max {rig_timer.max_time * 1000:.2f} ms"
    )
    logger.info(
        f"Chain update: avg {chain_timer.average_time * 1000:.2f} ms, "
        f"max {chain_timer.max_time * 1000:.2f} ms"
    )

    if chain.last_result is not None:
        logger.info(f"Joint chain final error: {chain.last_result.error:.3f}")

    if save_path:
        state = {"rig": rig.to_dict(), "joint_chain": chain.to_dict()}
        with open(save_path, "w") as f:
            yaml.safe_dump(state, f, default_flow_style=False, sort_keys=False)
        logger.info(f"Saved state to {save_path}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
