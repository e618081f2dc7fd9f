"""Local bridge that runs browser tests on behalf of a hosted platform."""

__version__ = "0.1.0"
