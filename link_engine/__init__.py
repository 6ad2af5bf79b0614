"""Link resolution engine for email campaign slices."""

__version__ = "0.1.0"
