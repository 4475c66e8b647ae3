"""Critique-revise multi-agent engine for resume content"""

__version__ = "1.0.0"
