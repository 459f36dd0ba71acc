"""Persistence operations shared by the HTML pages and the JSON API."""
