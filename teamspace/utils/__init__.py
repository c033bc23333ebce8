"""Utility helpers shared across services and blueprints."""
