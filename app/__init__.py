"""DGC Validator service."""
