"""
Mirror array tile calibration.
"""
__version__ = "0.1.0"
