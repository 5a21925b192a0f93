"""
Registry storage engines.

* ``RegistryStore`` is the contract every engine implements.
* ``InMemoryRegistryStore`` keeps state in process memory.
* ``JsonRegistryStore`` persists the same state as JSON files under a data directory.
* ``ArtifactStore`` keeps package archives on disk, checksummed with SHA256.
"""
