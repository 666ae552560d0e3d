# This file is part of firstboot. See LICENSE file for license information.

import logging
import time
from typing import Any, Callable, Dict, Optional, TypeVar
from urllib.parse import quote, urlparse, urlunparse

import requests
from requests import exceptions

from firstboot import version

LOG = logging.getLogger(__name__)

REDACTED = "REDACTED"

T = TypeVar("T")


def combine_url(base, *add_ons):
    def combine_single(url, add_on):
        url_parsed = list(urlparse(url))
        path = url_parsed[2]
        if path and not path.endswith("/"):
            path += "/"
        path += quote(str(add_on), safe="/:")
        url_parsed[2] = path
        return urlunparse(url_parsed)

    url = base
    for add_on in add_ons:
        url = combine_single(url, add_on)
    return url


class UrlResponse:
    """Wrap a requests.Response.

    A response whose body was streamed to a file keeps no body, so its
    contents are empty.
    """

    def __init__(self, response: requests.Response, streamed: bool = False):
        self._response = response
        self.streamed = streamed

    @property
    def contents(self) -> bytes:
        if self.streamed or self._response.content is None:
            return b""
        return self._response.content

    @property
    def url(self) -> str:
        return self._response.url

    def ok(self, redirects_ok=False) -> bool:
        upper = 300
        if redirects_ok:
            upper = 400
        if 200 <= self.code < upper:
            return True
        else:
            return False

    @property
    def headers(self):
        return self._response.headers

    @property
    def code(self) -> int:
        return self._response.status_code

    def __str__(self):
        if self.streamed:
            return ""
        return self._response.text


class UrlError(IOError):
    def __init__(self, cause, code=None, headers=None, url=None):
        IOError.__init__(self, str(cause))
        self.cause = cause
        self.code = code
        self.headers = headers
        if self.headers is None:
            self.headers = {}
        self.url = url


def readurl(
    url,
    *,
    timeout=None,
    connect_timeout=None,
    headers: Optional[Dict[str, str]] = None,
    stream_to: Optional[str] = None,
    check_status: bool = True,
) -> UrlResponse:
    """Perform a single GET request against url.

    :param url: Mandatory url to request.
    :param timeout: Timeout seconds for reading the response.
    :param connect_timeout: Timeout seconds for establishing the connection,
        defaults to timeout.
    :param headers: Optional dict of headers to send during request.
    :param stream_to: Optional path, the response body is streamed into this
        file instead of being held in memory. The connection is released
        once the body is written and the returned response has no contents.
    :param check_status: Optional boolean set True to raise when HTTPError
        occurs.

    :return: A UrlResponse object.
    :raises: UrlError on request failure or, when check_status is set, on an
        HTTP error status.
    """
    req_args: Dict[str, Any] = {
        "url": url,
        "stream": stream_to is not None,
    }
    if timeout is not None:
        req_args["timeout"] = (
            connect_timeout if connect_timeout is not None else timeout,
            timeout,
        )
    req_headers = {"User-Agent": "firstboot/%s" % version.version_string()}
    if headers:
        req_headers.update(headers)
    req_args["headers"] = req_headers

    filtered_req_args = dict(req_args)
    if "Authorization" in req_headers:
        filtered_req_args["headers"] = dict(
            req_headers, Authorization=REDACTED
        )
    LOG.debug("Read from %s with args %s", url, filtered_req_args)

    try:
        r = requests.get(**req_args)
        if check_status:
            r.raise_for_status()
    except exceptions.HTTPError as e:
        e.response.close()
        raise UrlError(
            e, code=e.response.status_code, headers=e.response.headers, url=url
        ) from e
    except exceptions.RequestException as e:
        raise UrlError(e, url=url) from e

    if stream_to is None:
        LOG.debug(
            "Read from %s (%s, %sb)", url, r.status_code, len(r.content)
        )
        return UrlResponse(r)

    total = 0
    try:
        with open(stream_to, "wb") as fh:
            for chunk in r.iter_content(chunk_size=64 * 1024):
                fh.write(chunk)
                total += len(chunk)
    except exceptions.RequestException as e:
        raise UrlError(e, code=r.status_code, url=url) from e
    finally:
        r.close()
    LOG.debug("Wrote %s bytes from %s to %s", total, url, stream_to)
    return UrlResponse(r, streamed=True)


def backoff_delays(retries: int, initial_delay: float, max_delay: float):
    """Yield the sleep before each retry: initial_delay doubling up to
    max_delay."""
    delay = initial_delay
    for _ in range(retries):
        yield min(delay, max_delay)
        delay *= 2


def retry_with_backoff(
    func: Callable[[], T],
    *,
    retries: int = 5,
    initial_delay: float = 1,
    max_delay: float = 32,
    retry_on=(Exception,),
    exception_cb: Optional[Callable[[int, Exception], None]] = None,
    sleep: Optional[Callable[[float], None]] = None,
) -> T:
    """Call func until it returns, sleeping with exponential backoff.

    func is tried once and then up to ``retries`` more times. Exceptions
    not in retry_on propagate immediately. When every attempt fails the
    last exception is raised.

    :param exception_cb: Called with (attempt, exception) after each failed
        attempt, before sleeping.
    """
    sleep = sleep or time.sleep
    delays = backoff_delays(retries, initial_delay, max_delay)
    attempt = 0
    while True:
        attempt += 1
        try:
            return func()
        except retry_on as e:
            if exception_cb:
                exception_cb(attempt, e)
            delay = next(delays, None)
            if delay is None:
                LOG.warning("Giving up after %s attempts", attempt)
                raise
            LOG.debug(
                "Attempt %s failed with %s, retrying in %s seconds",
                attempt,
                e,
                delay,
            )
            sleep(delay)
