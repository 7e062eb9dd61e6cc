"""termrelay: attach to long-lived terminal sessions from anywhere."""

__version__ = "0.1.0"
