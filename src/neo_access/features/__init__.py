"""Feature modules for neo-access."""
