"""Lampo heat-pump fleet dashboard package."""

# Define public API
__all__ = [
    "DashboardSettings",
    "load_settings",
    "ApiClient",
    "DashboardViews",
    "FetchResult",
    "fetch_or_default",
    "fetch_many",
]

# Import settings
from .settings import DashboardSettings, load_settings

# Import API client
from .api_client import ApiClient

# Import fetch helpers
from .fallback import FetchResult, fetch_many, fetch_or_default

# Import page models
from .views import DashboardViews
