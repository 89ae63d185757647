"""
Timed multiple-choice quiz runner with a Discord front end.
"""

__version__ = "0.1.0"
