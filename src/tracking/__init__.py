"""Optimization statistics."""
