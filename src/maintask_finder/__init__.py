"""MainTask finder - resolve the root task of a workflow assignment or task."""

__version__ = "0.1.0"
