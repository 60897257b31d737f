"""
Confidential batched-swap settlement core.
"""

__version__ = "0.1.0"
