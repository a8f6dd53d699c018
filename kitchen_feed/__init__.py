"""
Kitchen real-time order feed.

Live order events over a persistent connection, an ordered active-order
queue, SLA severity timers and kitchen notifications.
"""

__version__ = "1.0.0"
