
"""Result packaging for ProteomeXchange data package submissions."""

__version__ = '0.1.0'
