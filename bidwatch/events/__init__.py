"""Downstream notification of auction activity."""
