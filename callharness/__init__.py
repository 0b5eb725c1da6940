"""End-to-end and load-test harness for a browser-based video call demo."""

__version__ = "0.1.0"
