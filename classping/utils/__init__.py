"""Utility functions for classping."""

from classping.utils.helpers import ensure_dir, get_data_path, get_workspace_path

__all__ = ["ensure_dir", "get_data_path", "get_workspace_path"]
