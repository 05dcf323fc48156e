"""proxy-bench: concurrent TCP load harness and the round-robin proxy it measures."""

__version__ = "0.1.0"
