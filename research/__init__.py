"""Research application for Unheard V2.

This package holds the models, services, views, forms and templates for
personas, experiments and their collected responses.  Persistence rules
live in :mod:`research.services` so the HTML pages and the JSON API call
the same operations.
"""
