"""Offline quiz compiler and delivery runtime."""
