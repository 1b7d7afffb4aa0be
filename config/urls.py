"""
URL configuration for the Autoparts Commerce Platform.

The pricing engine is consumed in-process by the storefront; no HTTP
endpoints are exposed from this project.
"""

from django.urls import URLPattern, URLResolver

urlpatterns: list[URLPattern | URLResolver] = []
