"""deployhook - filtered webhook receiver that launches deploy commands."""
__version__ = "0.1.0"
