"""Root URL configuration for the Unheard V2 project."""

from django.contrib import admin
from django.urls import include, path

urlpatterns = [
    path('admin/', admin.site.urls),
    path('', include('research.urls')),
]
