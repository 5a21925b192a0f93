"""
Core of the zepplin package registry.

Storage engines, domain models and import tooling for a registry of Zig
packages. Serving layers (HTTP, CLI) sit on top of ``zepplin.storage`` and
never reach into a store's internals.
"""

__version__ = "0.1.0"
