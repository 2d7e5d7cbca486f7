"""
partonsim: Interleaved Parton-Level Evolution Engine

Generates the parton level of a hadron collision by letting three
processes compete on a single decreasing pT ladder.

Core concepts:
- The hard process seeds subsystem 0 in an append-only event record
- Additional interactions open new subsystems
- Initial- and final-state showers branch partons of every subsystem
- The hardest candidate wins each step, so pT only ever goes down
- Veto hooks may abort the event or take back a single emission

See SPEC_FULL.md and DESIGN.md for full details.
"""

__version__ = "0.1.0"
