"""Breathing watch by Riesz-pyramid motion magnification and frame differencing."""

__version__ = "1.0.0"