"""User profiles and content preferences backed by MongoDB."""
