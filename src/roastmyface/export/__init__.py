"""Roast card composition, color sanitization, rasterization and sharing."""
