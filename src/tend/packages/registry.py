"""Filesystem-backed registry of installed packages."""

import logging
import tomllib
from pathlib import Path

from pydantic import ValidationError

from tend.packages.models import PackageManifest, PackageMetadata

logger = logging.getLogger(__name__)

MANIFEST_NAME = "package.toml"


class PackageRegistry:
    """Discovers packages installed under `<prefix>/opt/`."""

    def __init__(self, packages_path: Path):
        self._packages_path = packages_path

    @property
    def packages_path(self) -> Path:
        return self._packages_path

    def _load_manifest(self, prefix: Path) -> PackageManifest | None:
        manifest_path = prefix / MANIFEST_NAME
        if not manifest_path.is_file():
            return None
        try:
            with manifest_path.open("rb") as f:
                data = tomllib.load(f)
            return PackageManifest.model_validate(data)
        except (tomllib.TOMLDecodeError, ValidationError, OSError) as e:
            logger.warning("Ignoring unreadable manifest %s: %s", manifest_path, e)
            return None

    def get(self, name: str) -> PackageMetadata:
        """Get metadata for a package, whether or not it is installed."""
        prefix = self._packages_path / name
        return PackageMetadata(name=name, prefix=prefix, manifest=self._load_manifest(prefix))

    def find(self, name: str) -> PackageMetadata | None:
        """Get metadata for an installed package, or None."""
        if not name or "/" in name or name.startswith("."):
            return None
        package = self.get(name)
        if not package.is_installed or package.manifest is None:
            return None
        return package

    def installed_packages(self) -> list[PackageMetadata]:
        """All installed packages, sorted by name."""
        if not self._packages_path.is_dir():
            return []
        packages = []
        for entry in sorted(self._packages_path.iterdir()):
            if not entry.is_dir() or entry.name.startswith("."):
                continue
            if package := self.find(entry.name):
                packages.append(package)
        return packages
