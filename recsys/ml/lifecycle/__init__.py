"""
Lifecycle Module
Startup hydration, readiness gating and shutdown persistence.
"""

from .hydrator import Hydrator, HydratorState, HydrationReport

__all__ = [
    "Hydrator",
    "HydratorState",
    "HydrationReport",
]
