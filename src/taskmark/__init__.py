"""taskmark: markdown-backed tasks, work logs, and workflows."""

__version__ = "1.0.0"
