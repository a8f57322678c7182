import os
from pathlib import Path

import pytest

from fountain_sync import hooks
from fountain_sync.constants import HOOK_BACKUP_SUFFIX, HOOK_MARKER


@pytest.fixture
def repo_path(tmp_path: Path) -> Path:
    (tmp_path / ".git").mkdir()
    return tmp_path


def test_install_writes_executable_hooks(repo_path: Path) -> None:
    written = hooks.install(repo_path)

    assert written == ["post-commit", "pre-push"]
    for name in written:
        hook_file = repo_path / ".git" / "hooks" / name
        content = hook_file.read_text()
        assert content.startswith("#!/bin/sh\n")
        assert HOOK_MARKER in content
        assert os.access(hook_file, os.X_OK)

    pre_push = (repo_path / ".git" / "hooks" / "pre-push").read_text()
    assert "fountain-sync start" in pre_push


def test_install_backs_up_foreign_hook(repo_path: Path) -> None:
    """Verifies that a user's own hook is preserved, then restored on uninstall."""
    hooks_dir = repo_path / ".git" / "hooks"
    hooks_dir.mkdir()
    (hooks_dir / "pre-push").write_text("#!/bin/sh\necho mine\n")

    hooks.install(repo_path)

    backup = hooks_dir / ("pre-push" + HOOK_BACKUP_SUFFIX)
    assert backup.read_text() == "#!/bin/sh\necho mine\n"
    assert hooks.is_managed(hooks_dir / "pre-push")

    removed = hooks.uninstall(repo_path)

    assert removed == ["post-commit", "pre-push"]
    assert (hooks_dir / "pre-push").read_text() == "#!/bin/sh\necho mine\n"
    assert not backup.exists()
    assert not (hooks_dir / "post-commit").exists()


def test_reinstall_does_not_clobber_backup(repo_path: Path) -> None:
    hooks_dir = repo_path / ".git" / "hooks"
    hooks_dir.mkdir()
    (hooks_dir / "post-commit").write_text("#!/bin/sh\necho original\n")

    hooks.install(repo_path)
    hooks.install(repo_path)

    backup = hooks_dir / ("post-commit" + HOOK_BACKUP_SUFFIX)
    assert backup.read_text() == "#!/bin/sh\necho original\n"


def test_uninstall_leaves_foreign_hooks(repo_path: Path) -> None:
    hooks_dir = repo_path / ".git" / "hooks"
    hooks_dir.mkdir()
    (hooks_dir / "post-commit").write_text("#!/bin/sh\necho mine\n")

    assert hooks.uninstall(repo_path) == []
    assert (hooks_dir / "post-commit").exists()


def test_get_hooks_dir_requires_git_directory(tmp_path: Path) -> None:
    (tmp_path / ".git").write_text("gitdir: ../elsewhere\n")

    with pytest.raises(ValueError, match="Cannot locate hooks directory"):
        hooks.get_hooks_dir(tmp_path)
