"""Tests for installed-module discovery."""

import textwrap

import pytest

from scan import load_module_list, module_name_from_path, parse_module_version, scan_directories


def _write(path, content):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(textwrap.dedent(content), encoding="utf-8")
    return path


class TestModuleNameFromPath:
    @pytest.mark.parametrize(
        "rel, expected",
        [
            ("Foo/Bar.pm", "Foo::Bar"),
            ("Foo.pm", "Foo"),
            ("x86_64-linux/Foo/Bar.pm", "Foo::Bar"),
            ("5.36.0/Foo.pm", "Foo"),
            ("auto/Foo/Bar.pm", None),
            ("Foo/Bar.pl", None),
            ("Foo/bad-name.pm", None),
        ],
    )
    def test_paths(self, rel, expected):
        assert module_name_from_path(rel) == expected


class TestParseModuleVersion:
    def test_our_version(self, tmp_path):
        path = _write(tmp_path / "Foo.pm", """\
            package Foo;
            use strict;
            our $VERSION = '1.23';
            1;
        """)
        assert parse_module_version(str(path), "Foo") == "1.23"

    def test_package_block_version(self, tmp_path):
        path = _write(tmp_path / "Foo.pm", """\
            package Foo 2.005;
            1;
        """)
        assert parse_module_version(str(path), "Foo") == "2.005"

    def test_version_declare(self, tmp_path):
        path = _write(tmp_path / "Foo.pm", """\
            package Foo;
            use version; our $VERSION = version->declare("v1.2.3");
        """)
        assert parse_module_version(str(path), "Foo") == "v1.2.3"

    def test_ignores_pod_and_data(self, tmp_path):
        path = _write(tmp_path / "Foo.pm", """\
            package Foo;

            =head1 SYNOPSIS

              our $VERSION = '9.99';

            =cut

            # our $VERSION = '8.88';
            $Foo::VERSION = '0.01';
            __END__
            our $VERSION = '7.77';
        """)
        assert parse_module_version(str(path), "Foo") == "0.01"

    def test_no_version(self, tmp_path):
        path = _write(tmp_path / "Foo.pm", "package Foo;\n1;\n")
        assert parse_module_version(str(path), "Foo") is None

    def test_unreadable_file(self, tmp_path):
        assert parse_module_version(str(tmp_path / "missing.pm")) is None


class TestScanDirectories:
    def test_first_directory_wins(self, tmp_path):
        first, second = tmp_path / "first", tmp_path / "second"
        _write(first / "Foo" / "Bar.pm", "package Foo::Bar;\nour $VERSION = '1.0';\n")
        _write(second / "Foo" / "Bar.pm", "package Foo::Bar;\nour $VERSION = '2.0';\n")
        _write(second / "Baz.pm", "package Baz;\nour $VERSION = '0.5';\n")
        _write(second / "NoVersion.pm", "package NoVersion;\n1;\n")

        modules = scan_directories([str(first), str(second)])

        assert [(m.name, m.installed_version) for m in modules] == [("Baz", "0.5"), ("Foo::Bar", "1.0")]
        assert modules[1].source_path.startswith(str(first))

    def test_missing_directory_skipped(self, tmp_path):
        assert scan_directories([str(tmp_path / "nope")]) == []


class TestLoadModuleList:
    def test_parses_lines(self, tmp_path):
        path = _write(tmp_path / "list.txt", """\
            # installed modules
            Foo::Bar 1.23
            Baz@0.5

            NoVersion
        """)

        modules = load_module_list(str(path))

        assert [(m.name, m.installed_version) for m in modules] == [("Foo::Bar", "1.23"), ("Baz", "0.5")]

    def test_missing_file_exits(self, tmp_path):
        with pytest.raises(SystemExit) as exc:
            load_module_list(str(tmp_path / "missing.txt"))
        assert exc.value.code == 1
