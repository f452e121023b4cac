"""
screenrelay - multi-provider session routing for a desktop AI assistant.
"""

__version__ = "0.1.0"
