"""
Two-party call-signaling relay.

Brokers offer/answer/ICE-candidate messages between the two endpoints of a
call and manages the call's admission and membership lifecycle.
"""

__version__ = "1.0.0"
