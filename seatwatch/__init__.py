"""
SeatWatch — monitor class sections and alert the moment a seat opens.
"""

__version__ = "0.3.0"
