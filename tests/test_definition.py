"""Tests for definition rendering, generation and installation."""

import os
import plistlib
from pathlib import Path

import pytest

from conftest import PLIST_TEMPLATE
from tend.packages.models import PackageManifest, PackageMetadata, ServiceSpec
from tend.service.definition import (
    PlistFormat,
    UnitFormat,
    cron_to_calendar_interval,
    render_definition,
    substitute_template,
    write_definition,
)


@pytest.fixture
def package(tmp_path: Path) -> PackageMetadata:
    return PackageMetadata(
        name="foo",
        prefix=tmp_path / "opt" / "foo",
        manifest=PackageManifest(
            name="foo",
            version="2.1.0",
            service=ServiceSpec(
                run=["bin/food", "--verbose"],
                keep_alive=True,
                working_dir="var",
                log_path="var/log/foo.log",
                environment={"FOO_HOME": "/srv/foo"},
            ),
        ),
    )


class TestTemplateSubstitution:
    """Tests for {{identifier}} substitution."""

    def test_name(self, package):
        assert substitute_template("svc-{{name}}", package) == "svc-foo"

    def test_paths_and_version(self, package):
        text = substitute_template("{{bin}} {{var}} {{version}}", package)
        assert text == f"{package.prefix}/bin {package.prefix}/var 2.1.0"

    def test_unknown_identifier_is_empty(self, package):
        assert substitute_template("[{{does_not_exist}}]", package) == "[]"

    def test_methods_are_empty(self, package):
        assert substitute_template("[{{command}}]", package) == "[]"


class TestPlistFormat:
    """Tests for launchd property list handling."""

    fmt = PlistFormat()

    def test_rewrite_existing_label(self):
        text = self.fmt.rewrite_label(PLIST_TEMPLATE, "org.tool.foo")
        assert "<string>org.tool.foo</string>" in text
        assert "com.example.original" not in text

    def test_insert_missing_label(self):
        source = "<plist>\n<dict>\n\t<key>RunAtLoad</key>\n\t<true/>\n</dict>\n</plist>"
        text = self.fmt.rewrite_label(source, "org.tool.foo")
        assert plistlib.loads(text.encode())["Label"] == "org.tool.foo"

    def test_strip_user_name(self):
        source = PLIST_TEMPLATE.replace(
            "<key>RunAtLoad</key>",
            "<key>UserName</key>\n\t<string>nobody</string>\n\t<key>RunAtLoad</key>",
        )
        text = self.fmt.apply_service_user(source, None)
        assert "UserName" not in text

    def test_set_user_name(self):
        text = self.fmt.apply_service_user(PLIST_TEMPLATE, "alice")
        assert self.fmt.owner(text) == "alice"

    def test_program_location(self):
        location, key = self.fmt.program_location(PLIST_TEMPLATE)
        assert location == "{{bin}}/{{name}}d"
        assert key == "first ProgramArguments value"

    def test_program_location_unparsable(self):
        assert self.fmt.program_location("not a plist")[0] is None

    def test_generate(self, package):
        plist = plistlib.loads(self.fmt.generate("org.tool.foo", package, False).encode())
        assert plist["Label"] == "org.tool.foo"
        assert plist["ProgramArguments"] == [str(package.prefix / "bin" / "food"), "--verbose"]
        assert plist["RunAtLoad"] is True
        assert plist["KeepAlive"] is True
        assert plist["WorkingDirectory"] == str(package.prefix / "var")
        assert plist["StandardOutPath"] == str(package.prefix / "var" / "log" / "foo.log")
        assert plist["EnvironmentVariables"] == {"FOO_HOME": "/srv/foo"}

    def test_generate_cron(self, tmp_path: Path):
        package = PackageMetadata(
            name="backup",
            prefix=tmp_path,
            manifest=PackageManifest(
                name="backup",
                service=ServiceSpec(run=["/usr/bin/true"], run_type="cron", cron="30 2 * * *"),
            ),
        )
        plist = plistlib.loads(self.fmt.generate("org.tool.backup", package, False).encode())
        assert plist["StartCalendarInterval"] == {"Minute": 30, "Hour": 2}
        assert plist["RunAtLoad"] is False

    def test_generate_requires_command(self, tmp_path: Path):
        package = PackageMetadata(name="empty", prefix=tmp_path)
        with pytest.raises(ValueError):
            self.fmt.generate("org.tool.empty", package, False)


class TestUnitFormat:
    """Tests for systemd unit handling."""

    fmt = UnitFormat()

    def test_generate(self, package):
        text = self.fmt.generate("org.tool.foo", package, False)
        assert "Description=org.tool.foo" in text
        assert f"ExecStart={package.prefix}/bin/food --verbose" in text
        assert "Restart=always" in text
        assert f"StandardOutput=append:{package.prefix}/var/log/foo.log" in text
        assert 'Environment="FOO_HOME=/srv/foo"' in text
        assert "WantedBy=default.target" in text

    def test_generate_as_root(self, package):
        text = self.fmt.generate("org.tool.foo", package, True)
        assert "WantedBy=multi-user.target" in text

    def test_label_rewrite_is_noop(self):
        unit = "[Service]\nExecStart=/usr/bin/foo\n"
        assert self.fmt.rewrite_label(unit, "org.tool.foo") == unit

    def test_program_location_strips_prefixes(self):
        unit = "[Service]\nExecStart=-/usr/bin/foo --flag\n"
        assert self.fmt.program_location(unit) == ("/usr/bin/foo", "ExecStart")

    def test_owner(self):
        assert self.fmt.owner("[Service]\nUser=influx\n") == "influx"
        assert self.fmt.owner("[Service]\n") is None


class TestCronConversion:
    def test_wildcards_are_omitted(self):
        assert cron_to_calendar_interval("0 * * * 1") == {"Minute": 0, "Weekday": 1}

    def test_ranges_unsupported(self):
        with pytest.raises(ValueError):
            cron_to_calendar_interval("*/5 * * * *")

    def test_wrong_field_count(self):
        with pytest.raises(ValueError):
            cron_to_calendar_interval("0 0 *")


class TestRenderAndWrite:
    """Tests for the full write path."""

    def test_render_applies_all_rewrites(self, package):
        source = PLIST_TEMPLATE.replace(
            "<key>RunAtLoad</key>",
            "<key>UserName</key>\n\t<string>nobody</string>\n\t<key>RunAtLoad</key>",
        )
        text = render_definition(
            source, label="org.tool.foo", package=package, fmt=PlistFormat()
        )
        assert "<string>org.tool.foo</string>" in text
        assert f"{package.prefix}/bin/food" in text
        assert "UserName" not in text

    def test_write_definition_mode_and_no_leftovers(self, tmp_path: Path):
        dest = tmp_path / "agents" / "org.tool.foo.plist"

        write_definition(dest, "first")
        write_definition(dest, "second")

        assert dest.read_text() == "second"
        assert os.stat(dest).st_mode & 0o777 == 0o644
        assert [p.name for p in dest.parent.iterdir()] == ["org.tool.foo.plist"]
