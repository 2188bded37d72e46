"""Normalization, similarity scoring and matching engine."""
