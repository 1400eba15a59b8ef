"""
Velvest - live network traffic analysis engine.
"""

__version__ = "0.1.0"
