"""
API module for the quote system.
Provides FastAPI-based REST API for accessing quote data.
"""

__all__ = ['app', 'routes', 'models']