"""Accord command line interface."""
