"""CSV product import pipeline for the storefront catalog."""

__version__ = '1.0.0'
