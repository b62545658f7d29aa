"""
Tiergate — runtime configuration and tier-based feature governance.

Tiergate answers two questions for a running application:

  1. What is the current value of configuration key K, and how is it
     changed safely, audited and rolled back?
  2. Does actor A, on subscription tier T, have access to feature F right
     now — and if not, why, and which tier would grant it?

Package layout (src/tiergate/):
  core/     — exceptions, constants, logging, engine settings
  runtime/  — configuration store, history, snapshots, presets
  access/   — feature registry, tier catalog, access controller, advisor
  engine.py — process-wide engine wiring and lifecycle
  cli/      — Click inspection CLI
"""

__version__ = "0.4.0"
__all__ = ["__version__"]
