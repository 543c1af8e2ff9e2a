"""cmdgate: a safety gate for shell commands proposed by coding agents."""

__version__ = "0.1.0"
