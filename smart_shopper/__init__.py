"""
Smart Shopper: household inventory and autonomous shopping assistant.
"""

__version__ = "0.1.0"
