"""Capability interfaces for the external collaborators of a pipeline run.

Modules
-------
protocols
    ``SourceProvider``, ``BuildSandbox``, ``StorageBackend`` and
    ``CdnService`` Protocols plus the records they exchange.
source
    ``DirectorySource`` (local checkouts) and ``InMemorySource``.
build
    ``SubprocessBuildSandbox``, which runs build commands in a temp directory.
storage
    ``InMemoryBucket`` and ``DirectoryBucket``, both policy-guarded.
cdn
    ``InMemoryCdn``: distributions with their edge caches and invalidations.
"""
