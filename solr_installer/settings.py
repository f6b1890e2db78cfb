"""
Initializes the Dynaconf settings object for the Solr installer.
This module is the single source of truth for all configuration.
"""

from pathlib import Path

from dynaconf import Dynaconf, Validator

PACKAGE_ROOT = Path(__file__).parent

settings = Dynaconf(
    root_path=str(PACKAGE_ROOT),
    settings_files=["config/settings.toml"],
    secrets=["config/.secrets.toml"],
    envvar_prefix="SOLR_INSTALLER",
    merge_enabled=True,
    environments=False,
    load_dotenv=False,
    validators=[
        Validator("logging.level", default="INFO"),
        Validator(
            "installer.version",
            "installer.cache_dir",
            "installer.output_dir",
            "installer.mirrors.listing_url",
            "installer.mirrors.archive_base_url",
            "installer.checksums.base_url",
            must_exist=True,
        ),
        Validator("installer.mirrors.count", gte=1),
        Validator("installer.mirrors.probe_timeout", gt=0),
    ],
)
