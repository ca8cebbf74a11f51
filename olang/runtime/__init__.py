"""Execution runtime for parsed workflows."""
