"""
SB Explorer: Azure Service Bus inspection gateway

A stateless HTTP gateway for browsing and manipulating queues, topics,
subscriptions and the messages they hold.
"""

__version__ = "0.1.0"
__author__ = "SB Explorer Contributors"

__all__ = ["__version__"]
