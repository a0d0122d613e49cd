"""Unit tests for the site-search command line."""

import logging

import pytest

from site_search.cli import EXIT_ERROR, EXIT_NO_MATCHES, EXIT_OK, build_argument_parser, main


@pytest.fixture(autouse=True)
def restore_root_logging():
    """configure_logging adds a root handler; drop it afterwards."""
    root = logging.getLogger()
    handlers = root.handlers[:]
    level = root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def built_site(site_root, tmp_path):
    output_dir = tmp_path / "out"
    assert main(["build", "--site-root", str(site_root), "--output-dir", str(output_dir)]) == EXIT_OK
    return output_dir


@pytest.mark.unit
class TestBuildCommand:
    def test_build_reports_counts(self, site_root, tmp_path, capsys):
        output_dir = tmp_path / "out"

        exit_code = main(["build", "--site-root", str(site_root), "--output-dir", str(output_dir)])

        out = capsys.readouterr().out
        assert exit_code == EXIT_OK
        assert "Indexed 2 page(s), skipped 1 (analyzer: standard)" in out
        assert "/drafts/untitled/" in out
        assert (output_dir / "search-index.json").exists()
        assert (output_dir / "document-store.json").exists()

    def test_settings_come_from_environment(self, site_root, tmp_path, monkeypatch, capsys):
        output_dir = tmp_path / "env-out"
        monkeypatch.setenv("SITE_SEARCH_SITE_ROOT", str(site_root))
        monkeypatch.setenv("SITE_SEARCH_OUTPUT_DIR", str(output_dir))
        monkeypatch.setenv("SITE_SEARCH_URL_PREFIX", "docs")

        assert main(["build"]) == EXIT_OK
        assert main(["query", "installation"]) == EXIT_OK
        assert "/docs/notes/" in capsys.readouterr().out

    def test_dry_run(self, site_root, tmp_path, capsys):
        output_dir = tmp_path / "out"

        assert main(["build", "--site-root", str(site_root), "--output-dir", str(output_dir), "--dry-run"]) == EXIT_OK
        assert not output_dir.exists()
        assert "Wrote" not in capsys.readouterr().out

    def test_unwritable_output_is_fatal(self, site_root, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory", encoding="utf-8")

        assert main(["build", "--site-root", str(site_root), "--output-dir", str(blocker)]) == EXIT_ERROR

    def test_invalid_configuration(self, monkeypatch):
        monkeypatch.setenv("SITE_SEARCH_ANALYZER", "klingon")

        assert main(["build"]) == EXIT_ERROR

    def test_invalid_worker_count(self):
        with pytest.raises(SystemExit):
            main(["build", "--max-workers", "0"])


@pytest.mark.unit
class TestQueryCommand:
    def test_results(self, built_site, capsys):
        capsys.readouterr()

        assert main(["query", "installation", "--index-dir", str(built_site)]) == EXIT_OK

        out = capsys.readouterr().out
        assert "2 results for" in out
        assert "[[Installation]] Notes" in out
        assert out.index("/notes/") < out.index("/getting-started/")

    def test_html_output_escapes_query(self, built_site, capsys):
        capsys.readouterr()

        exit_code = main(["query", "<script>", "--index-dir", str(built_site), "--format", "html"])

        out = capsys.readouterr().out
        assert exit_code == EXIT_NO_MATCHES
        assert "&lt;script&gt;" in out
        assert "<script>" not in out

    def test_limit(self, built_site, capsys):
        capsys.readouterr()

        assert main(["query", "installation", "--index-dir", str(built_site), "--limit", "1"]) == EXIT_OK
        assert "1 result for" in capsys.readouterr().out

    def test_no_matches(self, built_site):
        assert main(["query", "zebra", "--index-dir", str(built_site)]) == EXIT_NO_MATCHES

    def test_unavailable_index(self, tmp_path, capsys):
        exit_code = main(["query", "installation", "--index-dir", str(tmp_path / "missing")])

        assert exit_code == EXIT_ERROR
        assert "unavailable" in capsys.readouterr().out


@pytest.mark.unit
def test_parser_requires_a_command():
    with pytest.raises(SystemExit):
        build_argument_parser().parse_args([])
