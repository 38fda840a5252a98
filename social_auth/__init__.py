"""Social login API with admin notifications."""

__version__ = "0.3.0"
