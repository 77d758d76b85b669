"""Relay provisioner (Python-first, convergence-driven).

Core design goals:
- Declarative plans, strictly ordered
- Idempotent steps (probe before mutate)
- Atomic file writes
- Profile-aware decisions (Pi 5, Pi Zero 2W, CM4)
- Centralized logging
"""

__all__ = []
