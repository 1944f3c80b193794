"""Magia Plateada console client."""
