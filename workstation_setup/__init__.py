"""Workstation setup (Python-first, config-driven).

Core design goals:
- Declarative package lists (config.yaml)
- Idempotent installs: re-running is the retry mechanism
- Bounded parallelism per package kind
- Failures recorded, never fatal to the run
- Centralized logging
"""

__all__ = []
