"""
Phaseflow - Runtime Engine for Judge-Assisted Turn-Based Games

A deterministic engine that runs games described by two artifacts: a
phase graph with precondition rules (transitions) and per-step operations
and messages (instructions). The engine provides:
- Canonical state and all-or-nothing operation batches
- Stable player aliases for an external judge
- A JsonLogic-style rule language with player quantifiers
- A router that decides what runs next
- Merging of deterministic and judge-produced results
"""

__version__ = "0.1.0"
