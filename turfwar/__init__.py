"""
turfwar: gang warfare economy core.

Gangs, their vaults, bases and personnel, and the raid / rob / kidnap
resolution engine that moves value between them.
"""

__version__ = "0.1.0"
