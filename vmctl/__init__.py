"""vmctl package."""

__all__ = [
    "cli",
    "config",
    "connection",
    "constants",
    "descriptor",
    "emulator",
    "exceptions",
    "inspector",
    "lifecycle",
    "models",
    "utils",
]
