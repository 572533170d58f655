"""Batch depreciation services: executor, schedule manager and scheduler."""
