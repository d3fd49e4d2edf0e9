"""Hop Tracker: ground-contact and flight timing from grayscale frame batches."""

__version__ = "0.2.0"
