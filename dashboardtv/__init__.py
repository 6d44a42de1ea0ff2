"""DashboardTV - rotating dashboard display with optional AI-assisted ordering."""

__version__ = "0.1.0"

__all__ = ["__version__"]
