"""Abstract contracts (adapter pattern) for every external dependency.

Business logic in :mod:`mediabridge.services` depends only on these ABCs;
concrete adapters live in :mod:`mediabridge.providers` and are wired in
:mod:`mediabridge.main`.
"""

from mediabridge.interfaces.cache_provider import ICacheProvider
from mediabridge.interfaces.id_mapping_store import IIdMappingStore
from mediabridge.interfaces.metadata_provider import (
    ICrossReferenceProvider,
    IKitsuProvider,
    IMalProvider,
    IMetadataProvider,
    ITmdbProvider,
    ITvdbProvider,
    ITvmazeProvider,
)

__all__ = [
    "ICacheProvider",
    "ICrossReferenceProvider",
    "IIdMappingStore",
    "IKitsuProvider",
    "IMalProvider",
    "IMetadataProvider",
    "ITmdbProvider",
    "ITvdbProvider",
    "ITvmazeProvider",
]
