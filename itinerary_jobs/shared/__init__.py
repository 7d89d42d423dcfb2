"""Shared primitives used across layers."""
