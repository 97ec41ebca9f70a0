"""Adaptive problem generation."""

from mentalsum.engine.problem_engine import ProblemEngine

__all__ = ["ProblemEngine"]
