from __future__ import annotations


class BladeKitError(Exception):
    """Base class for errors raised by blade_kit."""


class EmptyInputError(BladeKitError, ValueError):
    """Source image is missing or has zero width/height."""


class InferenceError(BladeKitError, RuntimeError):
    """The inference runtime could not be created or failed to execute."""


class DecodeError(BladeKitError, ValueError):
    """Raw network output does not match the expected tensor layout."""


class GeometryError(BladeKitError, ValueError):
    """Letterbox geometry is degenerate and cannot be inverted."""
