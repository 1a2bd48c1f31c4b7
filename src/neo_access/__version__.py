"""Version information for neo-access."""

__version__ = "1.0.0"
