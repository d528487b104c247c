"""Terminal user interface for Scribeflow."""
