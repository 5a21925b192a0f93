"""Catalog clients and the adapter that imports their packages."""
