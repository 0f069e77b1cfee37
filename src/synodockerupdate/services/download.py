"""Download service with progress reporting."""

import os

from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskProgressColumn,
    TextColumn,
    TimeElapsedColumn,
)

from synodockerupdate.constants import DOWNLOAD_CHUNK_SIZE, DOWNLOAD_TIMEOUT
from synodockerupdate.errors_catalog import updater_error


class DownloadService:
    """Streams release artifacts to the working directory."""

    def __init__(self, logger, console, requests_module, timeout: float = DOWNLOAD_TIMEOUT):
        self.logger = logger
        self.console = console
        self.requests = requests_module
        self.timeout = timeout

    def fetch(
        self,
        url: str,
        dest_path: str,
        description: str = "Downloading...",
        follow_redirects: bool = True,
    ):
        self.logger.info("Downloading %s to %s", url, dest_path)

        try:
            with self.requests.get(
                url,
                stream=True,
                timeout=self.timeout,
                allow_redirects=follow_redirects,
            ) as response:
                response.raise_for_status()
                total_size = int(response.headers.get("Content-Length", 0))

                os.makedirs(os.path.dirname(dest_path) or ".", exist_ok=True)

                with Progress(
                    SpinnerColumn(),
                    TextColumn("[progress.description]{task.description}"),
                    BarColumn(),
                    TaskProgressColumn(),
                    "•",
                    TimeElapsedColumn(),
                    console=self.console,
                ) as progress:
                    task = progress.add_task(f"[cyan]{description}", total=total_size or None)
                    with open(dest_path, "wb") as file_obj:
                        for chunk in response.iter_content(chunk_size=DOWNLOAD_CHUNK_SIZE):
                            if not chunk:
                                continue
                            file_obj.write(chunk)
                            progress.update(task, advance=len(chunk))

        except self.requests.RequestException as exc:
            self.logger.error("Download failed for %s: %s", url, exc)
            raise updater_error("download_failed", url=url) from exc

        if not os.path.isfile(dest_path) or os.path.getsize(dest_path) == 0:
            raise updater_error("download_failed", url=url)
