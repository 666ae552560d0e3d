# This file is part of firstboot. See LICENSE file for license information.
"""Download user scripts, preferring the authenticated storage client.

Storage objects can be named by a gs://<bucket>/<object> url or by one of
the public http(s) forms of it. Any url recognised as a storage object is
fetched with gsutil, which uses the instance's service account. If that
fails, or the url is not a storage url, a plain unauthenticated transfer is
attempted instead.
"""

import logging
import os
import re
from typing import NamedTuple, Optional

from firstboot import subp, url_helper, util

LOG = logging.getLogger(__name__)

# [a-z0-9] only matches ascii characters here
BUCKET = r"(?P<bucket>[a-z0-9][-_.a-z0-9]*[a-z0-9])"
# Any non-empty name without the characters gsutil treats as wildcards
OBJECT = r"(?P<name>[^*?]+)"

STORAGE_URL_PATTERNS = [
    re.compile(r"gs://%s/%s" % (BUCKET, OBJECT)),
    # http(s)://<bucket>.storage.googleapis.com/<object>
    re.compile(r"https?://%s\.storage\.googleapis\.com/%s" % (BUCKET, OBJECT)),
    # http(s)://storage.cloud.google.com/<bucket>/<object>
    # http(s)://commondatastorage.googleapis.com/<bucket>/<object>
    # http(s)://storage.googleapis.com/<bucket>/<object>
    re.compile(
        r"https?://(?:storage\.cloud\.google\.com|"
        r"commondatastorage\.googleapis\.com|"
        r"storage\.googleapis\.com)/%s/%s" % (BUCKET, OBJECT)
    ),
]


class DownloadError(Exception):
    def __init__(self, url, reason):
        self.url = url
        self.reason = reason
        super().__init__("Failed to download %s: %s" % (url, reason))


class StorageObject(NamedTuple):
    bucket: str
    name: str

    @property
    def gs_url(self) -> str:
        return "gs://%s/%s" % (self.bucket, self.name)


def classify_url(url: str) -> Optional[StorageObject]:
    """Return the storage object url refers to, or None for other urls."""
    for pattern in STORAGE_URL_PATTERNS:
        match = pattern.fullmatch(url)
        if match:
            return StorageObject(match.group("bucket"), match.group("name"))
    return None


def _gsutil_copy(gs_url: str, dest: str, gsutil: str) -> bool:
    LOG.info("Downloading url from %s to %s using gsutil", gs_url, dest)
    try:
        out, err = subp.subp([gsutil, "cp", gs_url, dest])
    except subp.ProcessExecutionError as e:
        LOG.warning("gsutil failed to download %s: %s", gs_url, e)
        return False
    for line in (out + err).splitlines():
        LOG.debug("gsutil: %s", line)
    return True


def _http_copy(url: str, dest: str, timeout: float, connect_timeout: float):
    LOG.info("Downloading url from %s to %s", url, dest)
    try:
        url_helper.readurl(
            url,
            timeout=timeout,
            connect_timeout=connect_timeout,
            stream_to=dest,
        )
    except (url_helper.UrlError, OSError) as e:
        util.del_file(dest)
        raise DownloadError(url, e) from e


def download_url(url: str, dest: str, cfg: Optional[dict] = None) -> None:
    """Download url to dest once.

    :param cfg: The 'download' section of the configuration.
    :raises DownloadError: when no mechanism could fetch url.
    """
    cfg = cfg or {}
    gsutil = cfg.get("gsutil", "gsutil")
    util.ensure_dir(os.path.dirname(dest) or ".")

    obj = classify_url(url)
    if obj is None and url.startswith("gs://"):
        raise DownloadError(url, "not a valid storage object url")
    if obj is not None:
        if _gsutil_copy(obj.gs_url, dest, gsutil):
            return
        if url.startswith("gs://"):
            raise DownloadError(url, "gsutil could not fetch the object")
        LOG.info("Falling back to unauthenticated download of %s", url)
    _http_copy(
        url,
        dest,
        timeout=cfg.get("timeout", 120),
        connect_timeout=cfg.get("connect_timeout", 10),
    )


def download_with_retry(url: str, dest: str, cfg: Optional[dict] = None):
    """Download url to dest, retrying with exponential backoff.

    :raises DownloadError: from the last attempt when every attempt failed.
    """
    cfg = cfg or {}

    def _log_failure(attempt, exc):
        LOG.warning("Download attempt %s of %s failed: %s", attempt, url, exc)

    url_helper.retry_with_backoff(
        lambda: download_url(url, dest, cfg),
        retries=cfg.get("retries", 5),
        initial_delay=cfg.get("initial_delay", 1),
        max_delay=cfg.get("max_delay", 32),
        retry_on=(DownloadError,),
        exception_cb=_log_failure,
    )
    LOG.info("Downloaded %s to %s", url, dest)
