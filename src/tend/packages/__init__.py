"""Installed package discovery."""

from tend.packages.models import PackageManifest, PackageMetadata, ServiceSpec
from tend.packages.registry import MANIFEST_NAME, PackageRegistry

__all__ = [
    "MANIFEST_NAME",
    "PackageManifest",
    "PackageMetadata",
    "PackageRegistry",
    "ServiceSpec",
]
