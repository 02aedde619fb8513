# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Tests for the dotenv loader."""

from pathlib import Path
from unittest.mock import MagicMock, call, patch

import pytest

from difyrelay.dotenv_loader import load_dotenv_once, reset_dotenv_state


class TestLoadDotenvOnce:
    """Tests for load_dotenv_once."""

    def setup_method(self) -> None:
        """Reset state before each test."""
        reset_dotenv_state()

    @pytest.fixture(autouse=True)
    def _workdir(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
        workdir = tmp_path / "work"
        workdir.mkdir()
        monkeypatch.chdir(workdir)
        return workdir

    def test_idempotent(self, tmp_path: Path) -> None:
        """Second call is a no-op."""
        xdg_env = tmp_path / ".env"
        xdg_env.touch()
        mock_ld = MagicMock()
        with patch("difyrelay.dotenv_loader.load_dotenv", mock_ld):
            load_dotenv_once(xdg_env)
            load_dotenv_once(xdg_env)
        assert mock_ld.call_count == 1

    def test_loads_xdg_env(self, tmp_path: Path) -> None:
        """Loads from the XDG config directory when the file exists."""
        xdg_env = tmp_path / "config" / ".env"
        xdg_env.parent.mkdir()
        xdg_env.touch()
        mock_ld = MagicMock()
        with patch("difyrelay.dotenv_loader.load_dotenv", mock_ld):
            load_dotenv_once(xdg_env)
        mock_ld.assert_called_once_with(xdg_env)

    def test_loads_cwd_env(self, tmp_path: Path, _workdir: Path) -> None:
        """Loads .env from the working directory."""
        (_workdir / ".env").touch()
        mock_ld = MagicMock()
        with patch("difyrelay.dotenv_loader.load_dotenv", mock_ld):
            load_dotenv_once(tmp_path / "missing" / ".env")
        mock_ld.assert_called_once_with(_workdir / ".env")

    def test_xdg_before_cwd(self, tmp_path: Path, _workdir: Path) -> None:
        """XDG file is loaded first so its values take precedence."""
        xdg_env = tmp_path / ".env"
        xdg_env.touch()
        (_workdir / ".env").touch()
        mock_ld = MagicMock()
        with patch("difyrelay.dotenv_loader.load_dotenv", mock_ld):
            load_dotenv_once(xdg_env)
        assert mock_ld.call_args_list == [
            call(xdg_env),
            call(_workdir / ".env"),
        ]

    def test_no_files(self, tmp_path: Path) -> None:
        """Nothing is loaded when neither file exists."""
        mock_ld = MagicMock()
        with patch("difyrelay.dotenv_loader.load_dotenv", mock_ld):
            load_dotenv_once(tmp_path / "missing" / ".env")
        mock_ld.assert_not_called()

    def test_reset_allows_reload(self, tmp_path: Path) -> None:
        xdg_env = tmp_path / ".env"
        xdg_env.touch()
        mock_ld = MagicMock()
        with patch("difyrelay.dotenv_loader.load_dotenv", mock_ld):
            load_dotenv_once(xdg_env)
            reset_dotenv_state()
            load_dotenv_once(xdg_env)
        assert mock_ld.call_count == 2
