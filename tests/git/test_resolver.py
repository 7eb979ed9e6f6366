"""Tests for repository root resolution and path normalization."""

import pytest

from gitward.exceptions import PreconditionError
from gitward.git.resolver import canonical_root, relative_to_root


class TestCanonicalRoot:
    def test_strips_whitespace_and_trailing_slash(self, tmp_path):
        assert canonical_root(f"  {tmp_path}/\n") == tmp_path.resolve().as_posix()

    def test_resolves_symlinks(self, tmp_path):
        real = tmp_path / "real"
        real.mkdir()
        link = tmp_path / "link"
        link.symlink_to(real)
        assert canonical_root(str(link)) == real.resolve().as_posix()

    def test_filesystem_root_kept(self):
        assert canonical_root("/") == "/"


class TestRelativeToRoot:
    @pytest.fixture
    def root(self, tmp_path):
        path = tmp_path / "repo"
        path.mkdir()
        return path.resolve().as_posix()

    def test_relative_path(self, root):
        assert relative_to_root(root, "src/app.py") == "src/app.py"

    def test_absolute_inside(self, root):
        assert relative_to_root(root, f"{root}/docs/readme.md") == "docs/readme.md"

    def test_dot_segments_collapsed(self, root):
        assert relative_to_root(root, "src/../a.txt") == "a.txt"

    def test_escape_rejected(self, root):
        with pytest.raises(PreconditionError, match="escapes repository"):
            relative_to_root(root, "../other/a.txt")

    def test_absolute_outside_rejected(self, root, tmp_path):
        with pytest.raises(PreconditionError, match="escapes repository"):
            relative_to_root(root, str(tmp_path / "elsewhere.txt"))

    def test_trailing_parent_rejected(self, root):
        with pytest.raises(PreconditionError):
            relative_to_root(root, "src/../..")

    def test_root_itself_rejected(self, root):
        with pytest.raises(PreconditionError, match="Not a repository file"):
            relative_to_root(root, ".")

    def test_git_dir_rejected(self, root):
        with pytest.raises(PreconditionError, match="Not a repository file"):
            relative_to_root(root, ".git/HEAD")

    def test_symlink_entry_not_followed(self, root, tmp_path):
        outside = tmp_path / "outside.txt"
        outside.write_text("x")
        link = tmp_path / "repo" / "link.txt"
        link.symlink_to(outside)
        assert relative_to_root(root, "link.txt") == "link.txt"
