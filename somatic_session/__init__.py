"""
Somatic Session - a guided body-regulation session controller.

This package provides the session flow state machine (check-in, player,
afterglow) with its timers, plus an HTTP/SSE binding and CLI tools for
driving it from a UI.
"""

__version__ = "0.1.0"
