"""
DoorIQ practice simulation core.

Turn-based door-to-door sales practice: a rep talks to a simulated
homeowner, the engine tracks the conversation phase, coaches on every turn
and grades the finished session.
"""

__version__ = "1.0.0"
