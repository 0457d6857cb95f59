"""FIELDOPS — emergency response dispatch simulation."""

__version__ = "0.1.0"
