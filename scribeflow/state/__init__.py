"""Live session state and the display projection over it."""
