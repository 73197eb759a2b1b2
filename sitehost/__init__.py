"""sitehost - content-addressed multi-tenant static asset host."""

__version__ = "1.0.0"
