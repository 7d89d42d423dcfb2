"""Mapping providers: POI search, routing and time zones."""
