"""Lesson tracker package."""
