"""
Stock Allocation
================
Batch, point-in-time allocation of item stock to outstanding customer order lines.
"""

__version__ = '1.0.0'
