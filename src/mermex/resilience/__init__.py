"""Retry classification and concurrency guards."""
