"""Utility functions for forty-six."""

from fortysix.utils.helpers import ensure_dir, get_data_path

__all__ = ["ensure_dir", "get_data_path"]
