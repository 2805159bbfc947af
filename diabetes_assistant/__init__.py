"""Diabetes assistant: glucose diary, dosing engine and food analysis API."""

__all__: list[str] = []
