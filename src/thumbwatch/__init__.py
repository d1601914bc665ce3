"""Perceptual duplicate tracking for streams of images."""

__version__ = "0.1.0"
