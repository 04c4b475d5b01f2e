"""Pack store: registry, content-addressed installs, version resolution, fetchers."""

from scaffoldkit.store.fetchers import FetchedPack, GitFetcher, LocalFetcher, ZipFetcher, fetch_source
from scaffoldkit.store.pack_store import InstallResult, InstallStatus, PackStore, RemoveResult
from scaffoldkit.store.registry import (
    GitOrigin,
    LocalOrigin,
    NpmOrigin,
    PackInstallRecord,
    PackRegistryEntry,
    RegistryData,
    RegistryService,
    ZipOrigin,
)
from scaffoldkit.store.resolver import PackResolver, ResolvedPack, resolve_store_path
from scaffoldkit.store.versions import compare_versions, parse_version, sort_versions_desc

__all__ = [
    "FetchedPack",
    "GitFetcher",
    "GitOrigin",
    "InstallResult",
    "InstallStatus",
    "LocalFetcher",
    "LocalOrigin",
    "NpmOrigin",
    "PackInstallRecord",
    "PackRegistryEntry",
    "PackResolver",
    "PackStore",
    "RegistryData",
    "RegistryService",
    "RemoveResult",
    "ResolvedPack",
    "ZipFetcher",
    "ZipOrigin",
    "compare_versions",
    "fetch_source",
    "parse_version",
    "resolve_store_path",
    "sort_versions_desc",
]
