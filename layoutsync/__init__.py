"""
layoutsync: collaborative layout synchronization engine.

Pages hold ordered sections and stacks, stacks hold ordered items, and every
edit is reconciled across connected editors with per-record last-writer-wins.
"""

__version__ = "0.3.0"
