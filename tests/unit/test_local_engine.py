"""Tests for fsbackup.providers.copy.local — LocalCopyEngine."""

import os
from pathlib import Path
from unittest.mock import patch

import pytest

from fsbackup.providers.copy.base import CopyEngine, CopyMode
from fsbackup.providers.copy.local import LocalCopyEngine, is_excluded


def _tree(root: Path, files: dict[str, str]) -> Path:
    for rel, content in files.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
    return root


class TestLocalCopyEngineMeta:
    def test_name(self):
        assert LocalCopyEngine().name == "local"

    def test_info(self):
        info = LocalCopyEngine().info
        assert info.display_name == "Local copy"
        assert info.preserves_hard_links is True

    def test_always_available(self):
        assert LocalCopyEngine().is_available() is True

    def test_satisfies_protocol(self):
        assert isinstance(LocalCopyEngine(), CopyEngine)


class TestIsExcluded:
    def test_anchored_glob(self):
        assert is_excluded("/dev/null", ["/dev/*"])
        assert is_excluded("/proc/1/status", ["/proc/*"])
        assert not is_excluded("/dev", ["/dev/*"])
        assert not is_excluded("/home/dev/x", ["/dev/*"])

    def test_anchored_exact(self):
        assert is_excluded("/lost+found", ["/lost+found"])
        assert not is_excluded("/data/lost+found", ["/lost+found"])

    def test_unanchored_matches_name(self):
        assert is_excluded("/home/u/file.bak", ["*.bak"])
        assert is_excluded("/home/u/.cache", [".cache"])
        assert not is_excluded("/home/u/file.txt", ["*.bak"])

    def test_no_patterns(self):
        assert not is_excluded("/anything", [])


class TestCopy:
    def test_copies_tree_with_content_and_mode(self, tmp_path: Path):
        src = _tree(tmp_path / "src", {"a.txt": "alpha", "sub/b.txt": "beta"})
        (src / "sub" / "b.txt").chmod(0o600)
        dst = tmp_path / "dst"

        result = LocalCopyEngine().run(src, dst, CopyMode.COPY)

        assert result.success is True
        assert result.files_copied == 2
        assert (dst / "a.txt").read_text(encoding="utf-8") == "alpha"
        assert (dst / "sub" / "b.txt").read_text(encoding="utf-8") == "beta"
        assert (dst / "sub" / "b.txt").stat().st_mode & 0o777 == 0o600

    def test_preserves_mtime(self, tmp_path: Path):
        src = _tree(tmp_path / "src", {"a.txt": "alpha"})
        os.utime(src / "a.txt", (1_600_000_000, 1_600_000_000))
        dst = tmp_path / "dst"

        LocalCopyEngine().run(src, dst, CopyMode.COPY)
        assert int((dst / "a.txt").stat().st_mtime) == 1_600_000_000

    def test_symlinks_copied_as_links(self, tmp_path: Path):
        src = _tree(tmp_path / "src", {"real.txt": "r"})
        (src / "link").symlink_to("real.txt")
        dst = tmp_path / "dst"

        LocalCopyEngine().run(src, dst, CopyMode.COPY)
        assert (dst / "link").is_symlink()
        assert os.readlink(dst / "link") == "real.txt"

    def test_hard_links_preserved(self, tmp_path: Path):
        src = _tree(tmp_path / "src", {"one.txt": "shared"})
        os.link(src / "one.txt", src / "two.txt")
        dst = tmp_path / "dst"

        LocalCopyEngine().run(src, dst, CopyMode.COPY)
        assert (dst / "one.txt").stat().st_ino == (dst / "two.txt").stat().st_ino

    def test_excludes_applied(self, tmp_path: Path):
        src = _tree(tmp_path / "src", {"keep.txt": "k", "proc/1/status": "s", "lost+found/x": "x"})
        dst = tmp_path / "dst"

        LocalCopyEngine().run(src, dst, CopyMode.COPY, ["/proc/*", "/lost+found"])

        assert (dst / "keep.txt").exists()
        assert (dst / "proc").is_dir()
        assert list((dst / "proc").iterdir()) == []
        assert not (dst / "lost+found").exists()

    def test_copy_without_delete_keeps_extras(self, tmp_path: Path):
        src = _tree(tmp_path / "src", {"a.txt": "a"})
        dst = _tree(tmp_path / "dst", {"extra.txt": "e"})

        LocalCopyEngine().run(src, dst, CopyMode.COPY)
        assert (dst / "extra.txt").exists()
        assert (dst / "a.txt").exists()

    def test_does_not_write_through_hard_links(self, tmp_path: Path):
        src = _tree(tmp_path / "src", {"a.txt": "new content, longer"})
        other = _tree(tmp_path / "other", {"a.txt": "old"})
        dst = tmp_path / "dst"
        dst.mkdir()
        os.link(other / "a.txt", dst / "a.txt")

        LocalCopyEngine().run(src, dst, CopyMode.COPY)

        assert (dst / "a.txt").read_text(encoding="utf-8") == "new content, longer"
        assert (other / "a.txt").read_text(encoding="utf-8") == "old"

    def test_type_change_replaced(self, tmp_path: Path):
        src = _tree(tmp_path / "src", {"thing/inner.txt": "i"})
        dst = _tree(tmp_path / "dst", {"thing": "was a file"})

        result = LocalCopyEngine().run(src, dst, CopyMode.COPY)
        assert result.success is True
        assert (dst / "thing" / "inner.txt").exists()

    def test_missing_source_fails(self, tmp_path: Path):
        result = LocalCopyEngine().run(tmp_path / "nope", tmp_path / "dst", CopyMode.COPY)
        assert result.success is False
        assert "not found" in result.errors[0]
        assert not (tmp_path / "dst").exists()


class TestCopyDelete:
    def test_removes_extraneous_entries(self, tmp_path: Path):
        src = _tree(tmp_path / "src", {"a.txt": "a", "sub/b.txt": "b"})
        dst = _tree(tmp_path / "dst", {"stale.txt": "s", "sub/stale.txt": "s", "olddir/x": "x"})

        result = LocalCopyEngine().run(src, dst, CopyMode.COPY_DELETE)

        assert result.success is True
        assert sorted(p.name for p in dst.iterdir()) == ["a.txt", "sub"]
        assert sorted(p.name for p in (dst / "sub").iterdir()) == ["b.txt"]

    def test_excluded_entries_protected(self, tmp_path: Path):
        src = _tree(tmp_path / "src", {"a.txt": "a"})
        (src / "proc").mkdir()
        dst = _tree(tmp_path / "dst", {"proc/1/status": "s", "recovery.sh": "#!"})

        LocalCopyEngine().run(src, dst, CopyMode.COPY_DELETE, ["/proc/*", "/recovery.sh"])

        assert (dst / "proc" / "1" / "status").exists()
        assert (dst / "recovery.sh").exists()


class TestDryRunDeletions:
    def test_reports_without_mutating(self, tmp_path: Path):
        src = _tree(tmp_path / "src", {"a.txt": "a"})
        dst = _tree(tmp_path / "dst", {"a.txt": "a", "b.txt": "b", "dir/c.txt": "c"})

        result = LocalCopyEngine().run(src, dst, CopyMode.DRY_RUN_DELETIONS)

        assert result.success is True
        assert result.deletions == ["/b.txt", "/dir/c.txt", "/dir"]
        assert (dst / "b.txt").exists()
        assert (dst / "dir" / "c.txt").exists()

    def test_reports_type_changes(self, tmp_path: Path):
        src = _tree(tmp_path / "src", {"thing/inner.txt": "i"})
        dst = _tree(tmp_path / "dst", {"thing": "file"})

        result = LocalCopyEngine().run(src, dst, CopyMode.DRY_RUN_DELETIONS)
        assert result.deletions == ["/thing"]

    def test_missing_dest_reports_nothing(self, tmp_path: Path):
        src = _tree(tmp_path / "src", {"a.txt": "a"})
        result = LocalCopyEngine().run(src, tmp_path / "nope", CopyMode.DRY_RUN_DELETIONS)
        assert result.success is True
        assert result.deletions == []


class TestLinkReference:
    def test_unchanged_files_hard_linked(self, tmp_path: Path):
        src = _tree(tmp_path / "src", {"same.txt": "same", "changed.txt": "version two"})
        ref = tmp_path / "ref"
        LocalCopyEngine().run(src, ref, CopyMode.COPY)
        (src / "changed.txt").write_text("version three, longer", encoding="utf-8")
        (src / "new.txt").write_text("new", encoding="utf-8")

        dst = tmp_path / "dst"
        result = LocalCopyEngine().run(src, dst, CopyMode.LINK_REFERENCE, reference=ref)

        assert result.success is True
        assert (dst / "same.txt").stat().st_ino == (ref / "same.txt").stat().st_ino
        assert (dst / "changed.txt").stat().st_ino != (ref / "changed.txt").stat().st_ino
        assert (dst / "changed.txt").read_text(encoding="utf-8") == "version three, longer"
        assert (ref / "changed.txt").read_text(encoding="utf-8") == "version two"
        assert (dst / "new.txt").exists()
        assert result.files_copied == 2

    def test_requires_reference(self, tmp_path: Path):
        src = _tree(tmp_path / "src", {"a.txt": "a"})
        with pytest.raises(ValueError, match="reference"):
            LocalCopyEngine().run(src, tmp_path / "dst", CopyMode.LINK_REFERENCE)


class TestOwnership:
    def test_chown_when_preserving_owner(self, tmp_path: Path):
        src = _tree(tmp_path / "src", {"a.txt": "a"})
        st = (src / "a.txt").lstat()
        with patch("fsbackup.providers.copy.local.os.chown") as mock_chown:
            LocalCopyEngine(preserve_owner=True).run(src, tmp_path / "dst", CopyMode.COPY)

        mock_chown.assert_any_call(tmp_path / "dst" / "a.txt", st.st_uid, st.st_gid, follow_symlinks=False)

    def test_no_chown_otherwise(self, tmp_path: Path):
        src = _tree(tmp_path / "src", {"a.txt": "a"})
        with patch("fsbackup.providers.copy.local.os.chown") as mock_chown:
            LocalCopyEngine(preserve_owner=False).run(src, tmp_path / "dst", CopyMode.COPY)
        mock_chown.assert_not_called()


class TestDryRunFailure:
    def test_unreadable_dest_reported(self, tmp_path: Path):
        src = _tree(tmp_path / "src", {"a.txt": "a"})
        dst = _tree(tmp_path / "dst", {"a.txt": "a"})
        with patch.object(
            LocalCopyEngine, "_report_deletions", side_effect=PermissionError(13, "Permission denied"),
        ):
            result = LocalCopyEngine().run(src, dst, CopyMode.DRY_RUN_DELETIONS)

        assert result.success is False
        assert "Permission denied" in result.errors[0]
