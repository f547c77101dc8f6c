"""Ranking, binding selection, experiment tracking and the operator CLI."""
