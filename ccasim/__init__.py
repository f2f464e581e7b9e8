"""Simulation of Arm CCA worlds, a granule protection table and realm isolation."""

__version__ = "0.1.0"
__all__ = ["gpt_defs", "gpt", "memory", "realm", "world", "simulation", "benchmark"]