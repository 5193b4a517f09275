"""Async task bodies shared by workers and scripts."""
