"""Logging and metrics for kubemux."""
