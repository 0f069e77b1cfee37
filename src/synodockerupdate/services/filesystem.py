"""Filesystem helpers for syno-docker-update."""

import logging
import os
import shutil
import sys
from typing import List

from rich.console import Console


class FileSystemService:
    """Encapsulates file and directory side effects."""

    def __init__(self, logger: logging.Logger, console: Console):
        self.logger = logger
        self.console = console

    def set_permissions(self, path: str, mode: int):
        if sys.platform == "win32":
            return

        try:
            os.chmod(path, mode)
        except OSError as exc:
            self.logger.warning("Could not set permissions on %s: %s", path, exc)

    def ensure_dir(self, path: str):
        os.makedirs(path, exist_ok=True)

    def cleanup_dir(self, path: str):
        if os.path.exists(path):
            try:
                shutil.rmtree(path)
                self.logger.debug("Removed directory: %s", path)
            except OSError as exc:
                message = f"Warning: Could not remove {path}: {exc}"
                self.console.print(f"[yellow]{message}[/yellow]")
                self.logger.warning(message)

    def move_file(self, src: str, dest: str, mode: int):
        os.makedirs(os.path.dirname(dest) or ".", exist_ok=True)
        if os.path.isdir(dest) and not os.path.islink(dest):
            shutil.rmtree(dest)
        shutil.move(src, dest)
        self.logger.debug("Moved %s to %s", src, dest)
        self.set_permissions(dest, mode)

    def move_dir_contents(self, src_dir: str, dest_dir: str, mode: int) -> List[str]:
        """Move every entry of ``src_dir`` into ``dest_dir``, replacing existing ones."""
        moved = []
        os.makedirs(dest_dir, exist_ok=True)
        for name in sorted(os.listdir(src_dir)):
            dest = os.path.join(dest_dir, name)
            if os.path.lexists(dest) and not os.path.isdir(dest):
                os.remove(dest)
            self.move_file(os.path.join(src_dir, name), dest, mode)
            moved.append(dest)
        return moved
