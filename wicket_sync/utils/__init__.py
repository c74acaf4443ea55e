"""Shared helpers for logging and feature flags."""
