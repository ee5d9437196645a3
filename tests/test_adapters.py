"""
Tests for adapters — process runner, tarball extractor, Go toolchain, GitHub host, mocks.
"""

import http.client
import io
import json
import tarfile
import threading
import urllib.error
import urllib.request
from pathlib import Path

import pytest

from formulary.adapters.archive import TarballExtractor
from formulary.adapters.base import ProcessResult, Release
from formulary.adapters.forge.github import GitHubSourceHost
from formulary.adapters.mock import MockSourceHost, MockToolchain
from formulary.adapters.shell.process import run_process
from formulary.adapters.toolchain.go import GoToolchain, go_build_command
from formulary.core.errors import ExtractionError, FetchError, UpstreamUnavailable
from tests.helpers import FakeResponse, make_tarball

# ── Process runner ───────────────────────────────────────────────────


class TestRunProcess:
    def test_captures_output(self):
        result = run_process(["sh", "-c", "echo out; echo err >&2"])
        assert result.ok
        assert result.returncode == 0
        assert result.stdout == "out\n"
        assert result.stderr == "err\n"

    def test_merge_stderr(self):
        result = run_process(["sh", "-c", "echo err >&2"], merge_stderr=True)
        assert result.stdout == "err\n"

    def test_nonzero_exit(self):
        result = run_process(["sh", "-c", "exit 4"])
        assert not result.ok
        assert result.returncode == 4
        assert result.error is None

    def test_cwd_and_env(self, tmp_path: Path):
        result = run_process(
            ["sh", "-c", 'pwd; echo "$FORMULARY_TEST"'],
            cwd=tmp_path,
            env_overrides={"FORMULARY_TEST": "zipcmt"},
        )
        assert result.stdout.splitlines() == [str(tmp_path.resolve()), "zipcmt"]

    def test_timeout_kills(self):
        result = run_process(["sleep", "10"], timeout=0.3)
        assert result.timed_out
        assert not result.ok
        assert result.elapsed_ms < 5000

    def test_timeout_kills_grandchildren(self):
        # sh waits on sleep, which holds the output pipe open
        result = run_process(["sh", "-c", "sleep 10; echo done"], timeout=0.3)
        assert result.timed_out
        assert result.elapsed_ms < 5000
        assert "done" not in result.stdout

    def test_long_output_keeps_head_and_tail(self):
        result = run_process(
            ["sh", "-c", "echo 'zipcmt version 1.4.6'; printf '%9000s' '' | tr ' ' x; echo; echo end"],
        )
        assert result.stdout.startswith("zipcmt version 1.4.6")
        assert result.stdout.rstrip().endswith("end")
        assert len(result.stdout) < 9000

    def test_output_limit_disabled(self):
        result = run_process(["sh", "-c", "printf '%9000s' '' | tr ' ' x"], output_limit=None)
        assert result.stdout == "x" * 9000

    def test_cancel_kills(self):
        cancel = threading.Event()
        threading.Timer(0.2, cancel.set).start()

        result = run_process(["sleep", "10"], timeout=30, cancel=cancel)

        assert result.cancelled
        assert not result.timed_out
        assert result.elapsed_ms < 5000

    def test_missing_binary(self, tmp_path: Path):
        result = run_process([str(tmp_path / "no-such-binary")])
        assert result.returncode is None
        assert result.error is not None
        assert not result.ok


# ── Tarball extractor ────────────────────────────────────────────────


class TestTarballExtractor:
    def test_returns_top_directory(self, tmp_path: Path):
        data = make_tarball({"main.go": "package main\n", "cmd/zipcmt.go": "package cmd\n"})

        root = TarballExtractor().extract(data, tmp_path / "src")

        assert root == tmp_path / "src" / "zipcmt-1.4.6"
        assert (root / "main.go").read_text() == "package main\n"
        assert (root / "cmd" / "zipcmt.go").is_file()

    def test_flat_archive(self, tmp_path: Path):
        buf = io.BytesIO()
        with tarfile.open(fileobj=buf, mode="w") as tar:
            for name in ("go.mod", "main.go"):
                info = tarfile.TarInfo(name)
                info.size = 0
                tar.addfile(info, io.BytesIO(b""))

        root = TarballExtractor().extract(buf.getvalue(), tmp_path / "src")

        assert root == tmp_path / "src"
        assert (root / "go.mod").is_file()

    def test_path_traversal_rejected(self, tmp_path: Path):
        data = make_tarball({"../../evil.sh": "rm -rf /\n"}, top="zipcmt")
        with pytest.raises(ExtractionError, match="unsafe path"):
            TarballExtractor().extract(data, tmp_path / "src")
        assert not (tmp_path / "evil.sh").exists()

    def test_escaping_symlink_rejected(self, tmp_path: Path):
        buf = io.BytesIO()
        with tarfile.open(fileobj=buf, mode="w") as tar:
            info = tarfile.TarInfo("zipcmt/link")
            info.type = tarfile.SYMTYPE
            info.linkname = "../../../etc/passwd"
            tar.addfile(info)

        with pytest.raises(ExtractionError, match="unsafe link"):
            TarballExtractor().extract(buf.getvalue(), tmp_path / "src")

    def test_corrupt(self, tmp_path: Path):
        with pytest.raises(ExtractionError, match="corrupt archive"):
            TarballExtractor().extract(b"not a tarball", tmp_path / "src")


# ── Go toolchain ─────────────────────────────────────────────────────


class TestGoToolchain:
    def test_build_command(self):
        cmd = go_build_command(["-s", "-w"], Path("/tmp/out/zipcmt"), go="/usr/local/go/bin/go")
        assert cmd == ["/usr/local/go/bin/go", "build", "-trimpath", "-o=/tmp/out/zipcmt", "-ldflags=-s -w"]

    def test_unavailable(self, tmp_path: Path):
        go = GoToolchain(go=str(tmp_path / "go"))
        assert go.name == "go"
        assert not go.is_available()

    def test_build_runs_command(self, tmp_path: Path):
        # A fake "go" that records its arguments and writes the -o target
        fake_go = tmp_path / "go"
        fake_go.write_text(
            "#!/bin/sh\n"
            'echo "$@" > args.txt\n'
            'for a in "$@"; do case "$a" in -o=*) echo built > "${a#-o=}";; esac; done\n'
        )
        fake_go.chmod(0o755)
        source = tmp_path / "src"
        source.mkdir()
        output = tmp_path / "zipcmt"

        result = GoToolchain(go=str(fake_go)).build(
            source, output, ["-s", "-w", "-X", "main.version=1.4.6"], timeout=10,
        )

        assert result.ok, result.stderr
        assert output.read_text() == "built\n"
        args = (source / "args.txt").read_text()
        assert args.startswith("build -trimpath")
        assert "-ldflags=-s -w -X main.version=1.4.6" in args

    def test_build_failure_reported(self, tmp_path: Path):
        fake_go = tmp_path / "go"
        fake_go.write_text("#!/bin/sh\necho 'main.go:3:2: undefined: foo' >&2\nexit 1\n")
        fake_go.chmod(0o755)

        result = GoToolchain(go=str(fake_go)).build(tmp_path, tmp_path / "out", [], timeout=10)

        assert result.returncode == 1
        assert "undefined: foo" in result.stderr


# ── GitHub source host ───────────────────────────────────────────────


class TestGitHubSourceHost:
    def _patch(self, monkeypatch, handler) -> list[urllib.request.Request]:
        requests: list[urllib.request.Request] = []

        def fake_urlopen(req, timeout=None):
            requests.append(req)
            return handler(req)

        monkeypatch.setattr(urllib.request, "urlopen", fake_urlopen)
        return requests

    def test_list_releases(self, monkeypatch):
        body = json.dumps([
            {"tag_name": "v1.4.6", "draft": False, "prerelease": False},
            {"tag_name": "v1.5.0-rc.1", "draft": False, "prerelease": True},
            {"tag_name": "v2.0.0", "draft": True, "prerelease": False},
            {"name": "no tag"},
        ]).encode()
        requests = self._patch(monkeypatch, lambda req: FakeResponse(body))

        releases = GitHubSourceHost().list_releases("bengarrett/zipcmt", timeout=5)

        assert releases == [
            Release("v1.4.6"),
            Release("v1.5.0-rc.1", prerelease=True),
            Release("v2.0.0", draft=True),
        ]
        assert requests[0].full_url == (
            "https://api.github.com/repos/bengarrett/zipcmt/releases?per_page=100&page=1"
        )
        assert requests[0].get_header("User-agent").startswith("formulary/")

    def test_list_tags_paginates(self, monkeypatch):
        pages = {
            "1": [{"name": f"v0.0.{i}"} for i in range(100)],
            "2": [{"name": "v1.4.6"}],
        }

        def handler(req):
            page = req.full_url.rsplit("page=", 1)[1]
            return FakeResponse(json.dumps(pages[page]).encode())

        requests = self._patch(monkeypatch, handler)

        tags = GitHubSourceHost().list_tags("bengarrett/zipcmt", timeout=5)

        assert len(tags) == 101
        assert tags[-1] == "v1.4.6"
        assert len(requests) == 2

    def test_token_sent(self, monkeypatch):
        requests = self._patch(monkeypatch, lambda req: FakeResponse(b"[]"))
        GitHubSourceHost(token="ghp_example").list_tags("bengarrett/zipcmt", timeout=5)
        assert requests[0].get_header("Authorization") == "Bearer ghp_example"

    def test_http_error_is_unavailable(self, monkeypatch):
        def handler(req):
            raise urllib.error.HTTPError(req.full_url, 403, "rate limited", None, None)

        self._patch(monkeypatch, handler)

        with pytest.raises(UpstreamUnavailable, match="HTTP 403"):
            GitHubSourceHost().list_releases("bengarrett/zipcmt", timeout=5)

    def test_network_error_is_unavailable(self, monkeypatch):
        def handler(req):
            raise urllib.error.URLError("Name or service not known")

        self._patch(monkeypatch, handler)

        with pytest.raises(UpstreamUnavailable, match="cannot reach"):
            GitHubSourceHost().list_tags("bengarrett/zipcmt", timeout=5)

    def test_bad_json_is_unavailable(self, monkeypatch):
        self._patch(monkeypatch, lambda req: FakeResponse(b"<html>"))
        with pytest.raises(UpstreamUnavailable, match="invalid JSON"):
            GitHubSourceHost().list_tags("bengarrett/zipcmt", timeout=5)

    def test_unexpected_shape_is_unavailable(self, monkeypatch):
        self._patch(monkeypatch, lambda req: FakeResponse(b'{"message": "Not Found"}'))
        with pytest.raises(UpstreamUnavailable, match="unexpected response"):
            GitHubSourceHost().list_tags("bengarrett/zipcmt", timeout=5)

    def test_non_utf8_body_is_unavailable(self, monkeypatch):
        self._patch(monkeypatch, lambda req: FakeResponse(b"\x80\x81 not utf8"))
        with pytest.raises(UpstreamUnavailable, match="undecodable response"):
            GitHubSourceHost().list_releases("bengarrett/zipcmt", timeout=5)

    def test_truncated_body_is_unavailable(self, monkeypatch):
        truncated = http.client.IncompleteRead(b"[", 100)
        self._patch(monkeypatch, lambda req: FakeResponse(error=truncated))
        with pytest.raises(UpstreamUnavailable, match="truncated response"):
            GitHubSourceHost().list_releases("bengarrett/zipcmt", timeout=5)

    def test_fetch(self, monkeypatch):
        requests = self._patch(monkeypatch, lambda req: FakeResponse(b"tarball"))
        url = "https://github.com/bengarrett/zipcmt/archive/refs/tags/v1.4.6.tar.gz"
        assert GitHubSourceHost().fetch(url, timeout=5) == b"tarball"
        assert requests[0].full_url == url

    def test_fetch_failure(self, monkeypatch):
        def handler(req):
            raise urllib.error.URLError("timed out")

        self._patch(monkeypatch, handler)

        with pytest.raises(FetchError) as exc_info:
            GitHubSourceHost().fetch(
                "https://github.com/bengarrett/zipcmt/archive/refs/tags/v1.4.6.tar.gz", timeout=5,
            )
        assert exc_info.value.name == "bengarrett/zipcmt"
        assert exc_info.value.step == "fetch"

    def test_truncated_download_is_fetch_error(self, monkeypatch):
        truncated = http.client.IncompleteRead(b"\x1f\x8b", 4096)
        self._patch(monkeypatch, lambda req: FakeResponse(error=truncated))

        with pytest.raises(FetchError, match="download of") as exc_info:
            GitHubSourceHost().fetch(
                "https://github.com/bengarrett/zipcmt/archive/refs/tags/v1.4.6.tar.gz", timeout=5,
            )
        assert exc_info.value.step == "fetch"


# ── Mocks ────────────────────────────────────────────────────────────


class TestMocks:
    def test_source_host_unavailable(self):
        host = MockSourceHost()
        host.add_tags("bengarrett/zipcmt", "v1.4.6")
        host.set_unavailable("bengarrett/zipcmt")
        with pytest.raises(UpstreamUnavailable):
            host.list_tags("bengarrett/zipcmt", timeout=1)
        host.set_available("bengarrett/zipcmt")
        assert host.list_tags("bengarrett/zipcmt", timeout=1) == ["v1.4.6"]

    def test_toolchain_script_reflects_ldflags(self, tmp_path: Path):
        output = tmp_path / "zipcmt"
        result = MockToolchain().build(tmp_path, output, ["-X", "main.version=1.4.6"], timeout=1)
        assert result == ProcessResult(returncode=0)
        assert "zipcmt version 1.4.6" in output.read_text()
