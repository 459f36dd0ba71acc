"""Custom context processors for the research application.

Context processors add extra variables into the context of every template
rendered by Django.  Here we expose the navigation shell entries and mark
the one matching the current request path as active.
"""

from __future__ import annotations

from typing import Any, Dict, List

from django.urls import reverse

NAVIGATION = [
    ('Home', 'home', True),
    ('Personas', 'persona_list', False),
    ('Experiments', 'experiment_list', False),
    ('Results', 'results', False),
]


def navigation(request) -> Dict[str, Any]:
    """Return the navigation entries for the header.

    An entry is active when the request path equals its URL (``exact``
    entries) or starts with it.
    """
    path = getattr(request, 'path', '') or ''
    items: List[Dict[str, Any]] = []
    for label, url_name, exact in NAVIGATION:
        url = reverse(url_name)
        active = path == url if exact else path.startswith(url)
        items.append({'label': label, 'url': url, 'active': active})
    return {'app_name': 'Unheard V2', 'navigation': items}
