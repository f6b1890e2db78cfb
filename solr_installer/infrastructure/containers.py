"""
Dependency Injection container for the Solr installer.

This container uses the `dependency-injector` library to wire together all
the components of the application, such as services and infrastructure adapters,
based on the application's configuration.
"""

from dependency_injector import containers, providers
import httpx

from ..application.domain import (
    ChecksumStore,
    Downloader,
    Extractor,
    MirrorResolver,
    Repacker,
)
from ..application.service import DistributionService
from ..settings import settings

from .checksums import HttpChecksumStore
from .downloader import HttpDownloader
from .extractor import TarExtractor
from .mirrors import HttpMirrorResolver
from .repacker import TarRepacker


class Container(containers.DeclarativeContainer):
    """DI container for wiring the application components."""

    cli_args = providers.Configuration()

    config = providers.Object(settings)

    http_client = providers.Singleton(httpx.AsyncClient)

    resolver: providers.Factory[MirrorResolver] = providers.Factory(
        HttpMirrorResolver,
        client=http_client,
        listing_url=config().installer.mirrors.listing_url,
        archive_base_url=config().installer.mirrors.archive_base_url,
        default_path_info=config().installer.mirrors.default_path_info,
        mirror_count=config().installer.mirrors.count,
        probe_timeout=config().installer.mirrors.probe_timeout,
        concurrent=config().installer.mirrors.concurrent,
    )

    downloader: providers.Factory[Downloader] = providers.Factory(
        HttpDownloader,
        client=http_client,
        connect_timeout=config().installer.timeout,
        chunk_size=config().installer.downloader.chunk_size,
    )

    checksums: providers.Factory[ChecksumStore] = providers.Factory(
        HttpChecksumStore,
        client=http_client,
        force_check=cli_args.force_check,
        timeout=config().installer.checksums.timeout,
        chunk_size=config().installer.checksums.chunk_size,
    )

    extractor: providers.Factory[Extractor] = providers.Factory(TarExtractor)

    repacker: providers.Factory[Repacker] = providers.Factory(
        TarRepacker,
        library_root_suffix=config().installer.repacker.library_root_suffix,
        library_subdir=config().installer.repacker.library_subdir,
    )

    distribution_service = providers.Factory(
        DistributionService,
        resolver=resolver,
        downloader=downloader,
        checksums=checksums,
        extractor=extractor,
        repacker=repacker,
        checksum_base_url=config().installer.checksums.base_url,
    )
