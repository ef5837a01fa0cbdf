"""Tests for service identity and git SHA lookup."""

from accord.identity import (
    FALLBACK_NAME,
    FALLBACK_VERSION,
    find_project_file,
    get_git_sha,
    read_project_metadata,
    resolve_identity,
)


def write_project(directory, body='[project]\nname = "checkout"\nversion = "4.5.6"\n'):
    path = directory / "pyproject.toml"
    path.write_text(body)
    return path


class TestResolveIdentity:
    def test_explicit_values_win(self, tmp_path):
        project = write_project(tmp_path)

        identity = resolve_identity("web-app", "1.0.0", project)

        assert identity.name == "web-app"
        assert identity.version == "1.0.0"
        assert not identity.is_fallback

    def test_missing_values_read_from_project(self, tmp_path):
        identity = resolve_identity("web-app", None, write_project(tmp_path))
        assert (identity.name, identity.version) == ("web-app", "4.5.6")

    def test_fallback(self, tmp_path):
        identity = resolve_identity(None, None, tmp_path / "pyproject.toml")

        assert identity.name == FALLBACK_NAME
        assert identity.version == FALLBACK_VERSION
        assert identity.is_fallback

    def test_partial_fallback_keeps_known_name(self, tmp_path):
        identity = resolve_identity("web-app", None, write_project(tmp_path, "[tool.other]\n"))

        assert identity.name == "web-app"
        assert identity.version == FALLBACK_VERSION
        assert identity.is_fallback


class TestProjectFile:
    def test_found_in_parent(self, tmp_path):
        project = write_project(tmp_path)
        nested = tmp_path / "src" / "pkg"
        nested.mkdir(parents=True)

        assert find_project_file(nested) == project.resolve()

    def test_unreadable_toml(self, tmp_path):
        project = write_project(tmp_path, "[project\nname=")
        assert read_project_metadata(project) == (None, None)


class TestGitSha:
    def test_env_var_first(self, tmp_path, monkeypatch):
        monkeypatch.setenv("GITHUB_SHA", "from-env")
        assert get_git_sha(tmp_path) == "from-env"

    def test_branch_ref(self, tmp_path):
        git_dir = tmp_path / ".git"
        (git_dir / "refs" / "heads").mkdir(parents=True)
        (git_dir / "HEAD").write_text("ref: refs/heads/main\n")
        (git_dir / "refs" / "heads" / "main").write_text("abc123\n")

        assert get_git_sha(tmp_path) == "abc123"

    def test_packed_ref(self, tmp_path):
        git_dir = tmp_path / ".git"
        git_dir.mkdir()
        (git_dir / "HEAD").write_text("ref: refs/heads/main\n")
        (git_dir / "packed-refs").write_text("# pack-refs with: peeled\ndef456 refs/heads/main\n")

        assert get_git_sha(tmp_path / ".") == "def456"

    def test_detached_head(self, tmp_path):
        git_dir = tmp_path / ".git"
        git_dir.mkdir()
        (git_dir / "HEAD").write_text("0123abcd\n")

        nested = tmp_path / "sub"
        nested.mkdir()
        assert get_git_sha(nested) == "0123abcd"
