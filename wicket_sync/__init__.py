"""Wicket organization and connection sync service."""
