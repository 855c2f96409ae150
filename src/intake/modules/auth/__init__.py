"""Reviewer authentication module."""
