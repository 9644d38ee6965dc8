"""Utility helpers for image buffers and geometry."""
