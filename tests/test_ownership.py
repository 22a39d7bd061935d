"""Tests for root ownership hardening."""

import stat

import pytest

from tend.service.descriptor import ServiceDescriptor
from tend.service.errors import NativeCommandError
from tend.service.ownership import root_owned_paths, take_root_ownership

PLIST = """<?xml version="1.0" encoding="UTF-8"?>
<plist version="1.0">
<dict>
\t<key>Label</key>
\t<string>org.tool.nginx</string>
\t<key>ProgramArguments</key>
\t<array>
\t\t<string>{program}</string>
\t</array>
</dict>
</plist>
"""


@pytest.fixture
def descriptor(root_backend, registry, make_package) -> ServiceDescriptor:
    make_package("nginx")
    descriptor = ServiceDescriptor.from_package(registry.get("nginx"), root_backend)
    descriptor.installed_definition_path.parent.mkdir(parents=True)
    return descriptor


class TestRootOwnedPaths:
    """Tests for root_owned_paths()."""

    def test_collects_definition_program_and_bin(self, descriptor):
        program = descriptor.package.bin / "nginxd"
        program.write_text("#!/bin/sh\n")
        dest = descriptor.installed_definition_path
        dest.write_text(PLIST.format(program=program))

        paths = root_owned_paths(descriptor)

        assert paths == [dest, program.resolve(), program.resolve().parent]

    def test_missing_program_is_reported(self, descriptor, caplog):
        dest = descriptor.installed_definition_path
        dest.write_text(PLIST.format(program="/nonexistent/nginxd"))

        paths = root_owned_paths(descriptor)

        assert paths == [dest, descriptor.package.bin]
        assert "first ProgramArguments value does not exist" in caplog.text


class TestTakeRootOwnership:
    """Tests for take_root_ownership()."""

    def test_chowns_and_sets_sticky_bit(self, descriptor, monkeypatch, caplog):
        chowned = []
        monkeypatch.setattr(
            "tend.service.ownership.shutil.chown",
            lambda path, user, group: chowned.append((path, user, group)),
        )
        dest = descriptor.installed_definition_path
        dest.write_text(PLIST.format(program="/nonexistent/nginxd"))

        paths = take_root_ownership(descriptor, "wheel")

        assert chowned == [(p, "root", "wheel") for p in paths]
        assert descriptor.package.bin.stat().st_mode & stat.S_ISVTX
        assert not dest.stat().st_mode & stat.S_ISVTX
        assert "sudo rm" in caplog.text

    def test_failure_is_raised(self, descriptor, monkeypatch):
        def _denied(path, user, group):
            raise PermissionError("Operation not permitted")

        monkeypatch.setattr("tend.service.ownership.shutil.chown", _denied)
        descriptor.installed_definition_path.write_text("<plist/>")

        with pytest.raises(NativeCommandError, match="root:admin"):
            take_root_ownership(descriptor, "admin")
