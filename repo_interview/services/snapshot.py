# repo_interview/services/snapshot.py

"""
Download a GitHub repository at a pinned commit and extract it to a
submission-scoped scratch directory.

Only resolved commit SHAs are accepted: line numbers stored with each chunk
are only meaningful against the exact tree that was chunked.
"""

import os
import re
import shutil
import stat
import uuid
import zipfile
from contextlib import contextmanager
from dataclasses import dataclass

import httpx

from repo_interview.config import settings
from repo_interview.errors import DownloadError, ExtractError
from repo_interview.utils.logging import logger

COMMIT_SHA_RE = re.compile(r"^[0-9a-fA-F]{6,40}$")
USER_AGENT = "repo-interview-indexer/1.0"


@dataclass
class RepoSnapshot:
    repo_root_path: str
    extract_dir: str
    zip_path: str
    bytes_downloaded: int
    top_level_dir: str

    def cleanup(self) -> None:
        """Remove the archive and extracted tree. Never raises."""
        try:
            if os.path.exists(self.zip_path):
                os.remove(self.zip_path)
        except OSError as exc:
            logger.warning(f"Could not remove archive {self.zip_path}: {exc}")

        shutil.rmtree(self.extract_dir, ignore_errors=True)

        session_dir = os.path.dirname(self.extract_dir)
        try:
            if os.path.isdir(session_dir) and not os.listdir(session_dir):
                os.rmdir(session_dir)
        except OSError:
            # Another run for the same submission may own files in it
            pass
        logger.info(f"Cleaned up snapshot files under {session_dir}")


def build_zipball_url(owner: str, repo: str, pinned_commit_sha: str) -> str:
    base = settings.github_api_url.rstrip("/")
    return f"{base}/repos/{owner}/{repo}/zipball/{pinned_commit_sha}"


def _is_symlink(info: zipfile.ZipInfo) -> bool:
    return stat.S_ISLNK(info.external_attr >> 16)


class SnapshotFetcher:
    def __init__(
        self,
        http_client: httpx.Client | None = None,
        base_dir: str | None = None,
        max_bytes: int | None = None,
    ):
        self._http_client = http_client
        self.base_dir = base_dir or settings.snapshot_dir
        self.max_bytes = max_bytes or settings.max_download_bytes

    def _client(self) -> httpx.Client:
        if self._http_client is not None:
            return self._http_client
        return httpx.Client(timeout=settings.http_timeout_seconds, follow_redirects=True)

    def _headers(self) -> dict:
        headers = {
            "Accept": "application/vnd.github+json",
            "User-Agent": USER_AGENT,
        }
        if settings.github_token:
            headers["Authorization"] = f"Bearer {settings.github_token}"
        return headers

    def download(self, url: str, output_path: str) -> int:
        client = self._client()
        downloaded = 0
        try:
            with client.stream("GET", url, headers=self._headers(), follow_redirects=True) as resp:
                if resp.status_code == 404:
                    raise DownloadError(
                        "Repo not found or not public. Candidates must submit a public GitHub repo."
                    )
                if resp.status_code == 403:
                    logger.error(
                        "GitHub API rate limit hit. Remaining: "
                        f"{resp.headers.get('x-ratelimit-remaining')}, "
                        f"Reset: {resp.headers.get('x-ratelimit-reset')}"
                    )
                    raise DownloadError("GitHub API rate limit exceeded. Please try again later.")
                if resp.status_code >= 400:
                    raise DownloadError(f"GitHub API error: {resp.status_code} {resp.reason_phrase}")

                declared = resp.headers.get("content-length")
                if declared and declared.isdigit() and int(declared) > self.max_bytes:
                    raise DownloadError(
                        f"Repository archive exceeds maximum size of "
                        f"{self.max_bytes // (1024 * 1024)}MB"
                    )

                with open(output_path, "wb") as out:
                    for data in resp.iter_bytes():
                        downloaded += len(data)
                        if downloaded > self.max_bytes:
                            raise DownloadError(
                                f"Repository archive exceeds maximum size of "
                                f"{self.max_bytes // (1024 * 1024)}MB during download"
                            )
                        out.write(data)
        except httpx.HTTPError as exc:
            raise DownloadError(f"Failed to download repository archive: {exc}") from exc
        finally:
            if self._http_client is None:
                client.close()

        return downloaded

    @staticmethod
    def safe_extract(zip_path: str, extract_dir: str) -> str:
        """
        Extract `zip_path` into `extract_dir`, rejecting entries that would land
        outside it. Returns the archive's top-level directory name.
        """
        root = os.path.realpath(extract_dir)
        os.makedirs(root, exist_ok=True)
        top_level = None

        try:
            with zipfile.ZipFile(zip_path) as archive:
                for info in archive.infolist():
                    parts = [p for p in info.filename.split("/") if p]
                    if parts and top_level is None:
                        top_level = parts[0]

                    if info.is_dir():
                        continue
                    if _is_symlink(info):
                        logger.warning(f"Skipping symlink in archive: {info.filename}")
                        continue

                    target = os.path.realpath(os.path.join(root, *parts))
                    if not target.startswith(root + os.sep):
                        raise ExtractError(
                            f"Zip slip detected: entry '{info.filename}' would extract outside target directory"
                        )

                    os.makedirs(os.path.dirname(target), exist_ok=True)
                    with archive.open(info) as src, open(target, "wb") as dst:
                        shutil.copyfileobj(src, dst)
        except (zipfile.BadZipFile, zipfile.LargeZipFile, EOFError) as exc:
            raise ExtractError(f"Corrupt repository archive: {exc}") from exc
        except OSError as exc:
            raise ExtractError(f"Failed to extract repository archive: {exc}") from exc

        if top_level is None:
            raise ExtractError("Could not determine top-level directory from archive")
        return top_level

    def fetch(self, owner: str, repo: str, pinned_commit_sha: str, submission_id: str) -> RepoSnapshot:
        """
        Download and extract `owner/repo` at `pinned_commit_sha`.

        The caller owns the returned snapshot and must call `cleanup()` on
        every exit path (or use `open_snapshot`). On failure everything this
        call created is removed before the error propagates.
        """
        if not pinned_commit_sha or not COMMIT_SHA_RE.match(pinned_commit_sha):
            raise DownloadError(
                f"Pinned commit must be a resolved commit SHA, got '{pinned_commit_sha}'"
            )

        short_sha = pinned_commit_sha[:7]
        # Per-call suffix keeps concurrent runs for one submission apart
        session_dir = os.path.join(self.base_dir, submission_id)
        dir_name = f"{owner}-{repo}-{short_sha}-{uuid.uuid4().hex[:8]}"
        extract_dir = os.path.join(session_dir, dir_name)
        zip_path = os.path.join(session_dir, f"{dir_name}.zip")
        os.makedirs(extract_dir, exist_ok=True)

        snapshot = RepoSnapshot(
            repo_root_path="",
            extract_dir=extract_dir,
            zip_path=zip_path,
            bytes_downloaded=0,
            top_level_dir="",
        )

        url = build_zipball_url(owner, repo, pinned_commit_sha)
        logger.info(f"Downloading {owner}/{repo}@{short_sha} for submission {submission_id}")
        try:
            snapshot.bytes_downloaded = self.download(url, zip_path)
            snapshot.top_level_dir = self.safe_extract(zip_path, extract_dir)
        except Exception:
            logger.error(
                f"Failed to fetch snapshot: owner={owner}, repo={repo}, sha={pinned_commit_sha}"
            )
            snapshot.cleanup()
            raise

        snapshot.repo_root_path = os.path.join(extract_dir, snapshot.top_level_dir)
        logger.info(
            f"Extracted {owner}/{repo}@{short_sha} "
            f"({snapshot.bytes_downloaded} bytes) to {snapshot.repo_root_path}"
        )
        return snapshot


@contextmanager
def open_snapshot(fetcher: SnapshotFetcher, owner: str, repo: str, pinned_commit_sha: str, submission_id: str):
    snapshot = fetcher.fetch(owner, repo, pinned_commit_sha, submission_id)
    try:
        yield snapshot
    finally:
        snapshot.cleanup()
