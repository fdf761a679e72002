"""cconv - coding conventions, made executable."""

__version__ = "0.1.0"
