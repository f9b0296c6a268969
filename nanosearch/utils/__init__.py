"""Utility functions for nanosearch."""
