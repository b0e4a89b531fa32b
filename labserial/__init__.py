"""
Serial transport, logging and configuration shared by the instrument drivers.
"""

__version__ = "1.0.0"
