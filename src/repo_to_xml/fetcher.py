"""
Repository fetcher module.

Handles fetching repositories from local paths or by cloning git URLs, including
credentials for private repositories and cleanup of temporary clones.
"""

from __future__ import annotations

import logging
import os
import re
import shutil
import tempfile
from pathlib import Path
from typing import Any
from urllib.parse import quote, urlsplit, urlunsplit

from .config import ConfigError, RepoToXmlError

logger = logging.getLogger(__name__)

_SCP_LIKE_URL = re.compile(r"^(?:[\w.-]+@)?[\w.-]+:(?!//)(?P<path>.+)$")
_SUPPORTED_SCHEMES = ("http", "https", "ssh", "git", "file")


class FetchError(RepoToXmlError):
    """Error during repository fetching."""

    pass


def is_scp_like_url(url: str) -> bool:
    """Check for the scp-like git syntax, e.g. `git@github.com:owner/repo.git`."""
    return "://" not in url and bool(_SCP_LIKE_URL.match(url))


def repo_name_from_url(url: str) -> str:
    """Derive a repository directory name from a clone URL.

    Args:
        url: HTTPS, SSH, git or scp-like repository URL.

    Returns:
        The last path segment without a `.git` suffix.

    Raises:
        FetchError: If no repository name can be derived.
    """
    url = url.strip()
    if is_scp_like_url(url):
        path = _SCP_LIKE_URL.match(url).group("path")  # type: ignore[union-attr]
    else:
        path = urlsplit(url).path

    parts = [p for p in path.split("/") if p]
    # GitHub-style browse URLs: /owner/repo/tree/<ref>
    if len(parts) >= 4 and parts[2] in ("tree", "blob", "commit"):
        parts = parts[:2]
    if not parts:
        raise FetchError(f"Invalid repository URL (missing repository name): {url}")
    name = parts[-1].removesuffix(".git")
    if not name or name in (".", ".."):
        raise FetchError(f"Invalid repository URL (missing repository name): {url}")
    return name


def split_ref_from_url(url: str) -> tuple[str, str | None]:
    """Split a GitHub-style `/tree/<ref>` browse URL into `(clone_url, ref)`.

    Args:
        url: Repository URL as entered by the user.

    Returns:
        A tuple `(url, ref)`; `ref` is None and `url` is unchanged when the URL does
        not encode a ref.
    """
    if is_scp_like_url(url):
        return url, None
    parsed = urlsplit(url)
    parts = [p for p in parsed.path.split("/") if p]
    if len(parts) >= 4 and parts[2] in ("tree", "blob", "commit"):
        base = parsed._replace(path="/" + "/".join(parts[:2]), query="", fragment="")
        return urlunsplit(base), "/".join(parts[3:]) if parts[2] == "tree" else parts[3]
    return url, None


def build_clone_url(url: str, username: str | None = None, token: str | None = None) -> str:
    """Validate a repository URL and embed credentials into it.

    Args:
        url: Repository URL.
        username: Optional username for private repositories.
        token: Optional access token / password for private repositories.

    Returns:
        The URL to pass to `git clone`.

    Raises:
        FetchError: If the URL is malformed or credentials are given for a URL that
            cannot carry them.
    """
    url = url.strip()
    if not url:
        raise FetchError("Invalid URL: repository URL is empty")

    if is_scp_like_url(url):
        if username or token:
            raise FetchError(f"Invalid URL: {url} (credentials require an http(s) URL)")
        return url

    try:
        parsed = urlsplit(url)
        parsed.port  # noqa: B018 - raises ValueError on a malformed port
    except ValueError as e:
        raise FetchError(f"Invalid URL: {url} ({e})") from e

    if parsed.scheme not in _SUPPORTED_SCHEMES:
        raise FetchError(f"Invalid URL: {url} (unsupported scheme {parsed.scheme or 'none'!r})")
    if parsed.scheme != "file" and not parsed.hostname:
        raise FetchError(f"Invalid URL: {url} (missing host)")

    if not username and not token:
        return url

    if parsed.scheme not in ("http", "https"):
        raise FetchError(f"Invalid URL: {url} (credentials require an http(s) URL)")

    userinfo = quote(username or "", safe="")
    if token:
        userinfo += ":" + quote(token, safe="")
    host = parsed.hostname or ""
    if ":" in host:
        host = f"[{host}]"
    netloc = f"{userinfo}@{host}"
    if parsed.port is not None:
        netloc += f":{parsed.port}"
    return urlunsplit(parsed._replace(netloc=netloc))


def redact_url(text: str, *secrets: str | None) -> str:
    """Remove credentials from a message that may contain an authenticated URL."""
    text = re.sub(r"(://)[^/@\s]+@", r"\1***@", text)
    for secret in secrets:
        if secret:
            text = text.replace(secret, "***").replace(quote(secret, safe=""), "***")
    return text


def clone_repository(
    url: str,
    ref: str | None = None,
    target_dir: Path | None = None,
    shallow: bool = True,
    username: str | None = None,
    token: str | None = None,
) -> Path:
    """Clone a git repository to a local directory.

    Args:
        url: Repository URL (HTTPS, SSH, git or scp-like).
        ref: Optional branch/tag/SHA to checkout. If omitted, uses the default branch
            (or any ref encoded in a `/tree/<ref>` browse URL).
        target_dir: Parent directory to clone into. If None, a temporary directory is created.
        shallow: Whether to attempt a shallow clone (`depth=1`) when possible.
        username: Optional username for private repositories.
        token: Optional access token for private repositories.

    Returns:
        Path to the cloned repository root directory.

    Raises:
        FetchError: If GitPython is unavailable, the URL is malformed or the
            clone/checkout fails.
    """
    try:
        import git
    except ImportError as exc:
        raise FetchError(
            "GitPython and a git executable are required for cloning. "
            "Install with: pip install gitpython"
        ) from exc

    url, url_ref = split_ref_from_url(url.strip())

    # Use ref from URL if not explicitly provided
    if ref is None:
        ref = url_ref

    clone_url = build_clone_url(url, username, token)
    repo_name = repo_name_from_url(url)

    # Create target directory
    created_temp = target_dir is None
    if target_dir is None:
        target_dir = Path(tempfile.mkdtemp(prefix="repo-to-xml-"))
    else:
        target_dir = Path(target_dir)
        target_dir.mkdir(parents=True, exist_ok=True)

    repo_path = target_dir / repo_name

    logger.info("Cloning %s...", redact_url(url))

    try:
        # Clone options
        clone_kwargs: dict[str, Any] = {"depth": 1} if shallow and ref is None else {}

        if ref:
            if shallow:
                # Try shallow clone with specific branch
                try:
                    git.Repo.clone_from(clone_url, repo_path, branch=ref, depth=1)
                except git.GitCommandError:
                    # Fall back to full clone if shallow with ref fails (e.g. a SHA)
                    if repo_path.exists():
                        shutil.rmtree(repo_path)
                    repo = git.Repo.clone_from(clone_url, repo_path)
                    repo.git.checkout(ref)
            else:
                repo = git.Repo.clone_from(clone_url, repo_path)
                repo.git.checkout(ref)
        else:
            git.Repo.clone_from(clone_url, repo_path, **clone_kwargs)

        logger.info("Cloned to %s", repo_path)
        return repo_path

    except git.GitCommandError as e:
        if created_temp:
            cleanup_temp_repo(target_dir)
        raise FetchError(
            f"Git clone failed: {redact_url(str(e), username, token)}"
        ) from None


def validate_local_path(path: Path) -> Path:
    """Validate and resolve a local repository path.

    Args:
        path: Local path to validate.

    Returns:
        Resolved absolute path to a readable directory.

    Raises:
        ConfigError: If the path does not exist, is not a directory, or is not readable.
    """
    resolved = Path(path).expanduser().resolve()

    if not resolved.exists():
        raise ConfigError(f"Path does not exist: {resolved}")

    if not resolved.is_dir():
        raise ConfigError(f"Path is not a directory: {resolved}")

    # Check if it's readable
    if not os.access(resolved, os.R_OK):
        raise ConfigError(f"Path is not readable: {resolved}")

    return resolved


def fetch_repository(
    path: Path | None = None,
    repo_url: str | None = None,
    ref: str | None = None,
    target_dir: Path | None = None,
    username: str | None = None,
    token: str | None = None,
) -> tuple[Path, bool]:
    """Fetch a repository from a local path or by cloning a git URL.

    Exactly one of `path` or `repo_url` must be provided.

    Args:
        path: Local path to an existing repository directory.
        repo_url: Repository URL to clone.
        ref: Optional branch/tag/SHA when cloning.
        target_dir: Optional target directory for clones. If None, a temp directory is used.
        username: Optional username for private repositories.
        token: Optional access token for private repositories.

    Returns:
        Tuple `(repo_path, is_temp)` where `is_temp` indicates whether the returned repository
        should be cleaned up by the caller.

    Raises:
        ConfigError: If the local path is not a readable directory.
        FetchError: If neither or both input sources are provided, or the clone fails.
    """
    if path is not None and repo_url is not None:
        raise FetchError("Cannot use both a local path and a repository URL")

    if path is not None:
        return validate_local_path(path), False

    if repo_url is not None:
        cloned_path = clone_repository(
            repo_url, ref, target_dir, username=username, token=token
        )
        return cloned_path, target_dir is None  # is_temp if no target specified

    raise FetchError("Either path or repo_url must be provided")


def cleanup_temp_repo(path: Path) -> None:
    """Delete a temporary clone directory.

    Args:
        path: Path to the temporary directory to remove.
    """
    try:
        if path.exists():
            shutil.rmtree(path)
            logger.info("Cleaned up temporary repo directory.")
    except OSError as e:
        logger.warning("Failed to clean up temp repo %s: %s", path, e)


class RepoContext:
    """
    Context manager for repository fetching.

    Handles automatic cleanup of temporary cloned repositories.
    """

    def __init__(
        self,
        path: Path | None = None,
        repo_url: str | None = None,
        ref: str | None = None,
        username: str | None = None,
        token: str | None = None,
    ) -> None:
        """Initialize the context manager.

        Args:
            path: Local repository path (mutually exclusive with `repo_url`).
            repo_url: Repository URL to clone (mutually exclusive with `path`).
            ref: Optional git ref to checkout when cloning.
            username: Optional username for private repositories.
            token: Optional access token for private repositories.
        """
        self.path = path
        self.repo_url = repo_url
        self.ref = ref
        self.username = username
        self.token = token
        self._repo_path: Path | None = None
        self._is_temp: bool = False

    def __enter__(self) -> Path:
        """Enter the context, fetching the repository.

        Returns:
            The path to the fetched repository root.

        Raises:
            FetchError: If fetching fails.
        """
        self._repo_path, self._is_temp = fetch_repository(
            path=self.path,
            repo_url=self.repo_url,
            ref=self.ref,
            username=self.username,
            token=self.token,
        )
        return self._repo_path

    def __exit__(
        self, exc_type: type[BaseException] | None, exc_val: BaseException | None, exc_tb: Any
    ) -> None:
        """Exit the context and clean up any temporary clone."""
        if self._is_temp and self._repo_path is not None:
            cleanup_temp_repo(self._repo_path.parent)
