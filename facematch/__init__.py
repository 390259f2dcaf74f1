"""Local two-photo face verification: ID photo vs. selfie."""

__version__ = "0.1.0"
