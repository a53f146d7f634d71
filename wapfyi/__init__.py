"""URL shortener web application with proof-of-work protected submissions."""

__version__ = "0.1.0"