"""Request handlers for managing services, backups and restores, with in-memory cluster stores."""

__version__ = "0.0.16"
__all__ = ["__version__"]