"""Configuration models and rule tables."""
