"""Core services for a CTF platform: environment, configuration, cache, media and database records."""

__version__ = "0.1.0"