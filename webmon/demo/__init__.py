"""Demo target: a deliberately flaky HTTP service to supervise."""

from webmon.demo.target import create_demo_app, pick_outcome, run_demo_target

__all__ = ["create_demo_app", "pick_outcome", "run_demo_target"]
