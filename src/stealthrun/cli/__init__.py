"""Command-line interface (``stealthrun``)."""
