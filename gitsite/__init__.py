"""Git-backed static website stack: declaration, provisioning and sync."""

__version__ = "0.1.0"
