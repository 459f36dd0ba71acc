"""Django project package for Unheard V2."""
