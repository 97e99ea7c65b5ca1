"""Kernel services: sequence allocation and the Journal Poster."""
