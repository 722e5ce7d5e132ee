"""Data models shared across the tester."""
