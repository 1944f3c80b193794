"""Magia Plateada marketplace server."""
