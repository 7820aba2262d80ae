"""Segment Builder: audience segment filter engine and its HTTP service."""
