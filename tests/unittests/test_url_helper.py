# This file is part of firstboot. See LICENSE file for license information.

import logging
from unittest import mock

import pytest
import requests

from firstboot import url_helper
from firstboot.url_helper import (
    UrlError,
    backoff_delays,
    combine_url,
    readurl,
    retry_with_backoff,
)

M_PATH = "firstboot.url_helper."


def _response(status_code=200, content=b"", url="http://example.com"):
    response = requests.Response()
    response.status_code = status_code
    response._content = content
    response.url = url
    response._content_consumed = True
    return response


class TestCombineUrl:
    def test_combine_url(self):
        assert "http://a/b/c" == combine_url("http://a/b", "c")
        assert "http://a/b/c" == combine_url("http://a/b/", "c")
        assert "http://a/b/c/d" == combine_url("http://a/b", "c", "d")
        assert "http://a/b/1" == combine_url("http://a/b", 1)


class TestReadurl:
    @mock.patch(M_PATH + "requests.get")
    def test_success(self, m_get):
        m_get.return_value = _response(content=b"hello")
        response = readurl("http://example.com", timeout=5)
        assert b"hello" == response.contents
        assert 200 == response.code
        assert response.ok()
        kwargs = m_get.call_args[1]
        assert (5, 5) == kwargs["timeout"]
        assert kwargs["headers"]["User-Agent"].startswith("firstboot/")

    @mock.patch(M_PATH + "requests.get")
    def test_connect_timeout(self, m_get):
        m_get.return_value = _response()
        readurl("http://example.com", timeout=120, connect_timeout=10)
        assert (10, 120) == m_get.call_args[1]["timeout"]

    @mock.patch(M_PATH + "requests.get")
    def test_http_error_raises_url_error(self, m_get):
        m_get.return_value = _response(status_code=404)
        with pytest.raises(UrlError) as exc_info:
            readurl("http://example.com/missing")
        assert 404 == exc_info.value.code
        assert "http://example.com/missing" == exc_info.value.url

    @mock.patch(M_PATH + "requests.get")
    def test_http_error_without_check_status(self, m_get):
        m_get.return_value = _response(status_code=503)
        response = readurl("http://example.com", check_status=False)
        assert 503 == response.code
        assert not response.ok()

    @mock.patch(
        M_PATH + "requests.get",
        side_effect=requests.exceptions.ConnectionError("refused"),
    )
    def test_connection_error(self, m_get):
        with pytest.raises(UrlError) as exc_info:
            readurl("http://example.com")
        assert exc_info.value.code is None
        assert isinstance(
            exc_info.value.cause, requests.exceptions.ConnectionError
        )

    @mock.patch(M_PATH + "requests.get")
    def test_stream_to_file(self, m_get, tmp_path):
        m_get.return_value = _response(content=b"#!/bin/sh\necho hi\n")
        dest = tmp_path / "script"
        readurl("http://example.com/s.sh", stream_to=str(dest))
        assert b"#!/bin/sh\necho hi\n" == dest.read_bytes()
        assert m_get.call_args[1]["stream"] is True

    @mock.patch(M_PATH + "requests.get")
    def test_streamed_response_is_closed(self, m_get, tmp_path):
        m_response = mock.Mock(status_code=200)
        m_response.iter_content.return_value = [b"ab", b"c"]
        m_get.return_value = m_response
        dest = tmp_path / "script"
        response = readurl("http://example.com/s.sh", stream_to=str(dest))
        assert b"abc" == dest.read_bytes()
        m_response.close.assert_called_once_with()
        assert b"" == response.contents
        assert "" == str(response)
        assert 200 == response.code

    @mock.patch(M_PATH + "requests.get")
    def test_interrupted_stream_is_closed(self, m_get, tmp_path):
        m_response = mock.Mock(status_code=200)
        m_response.iter_content.side_effect = (
            requests.exceptions.ChunkedEncodingError("connection reset")
        )
        m_get.return_value = m_response
        with pytest.raises(UrlError) as exc_info:
            readurl("http://example.com/s.sh", stream_to=str(tmp_path / "s"))
        m_response.close.assert_called_once_with()
        assert "http://example.com/s.sh" == exc_info.value.url

    @mock.patch(M_PATH + "requests.get")
    def test_request_arguments(self, m_get):
        m_get.return_value = _response()
        readurl("http://example.com")
        assert ["headers", "stream", "url"] == sorted(m_get.call_args[1])

    @mock.patch(M_PATH + "requests.get")
    def test_authorization_is_not_logged(self, m_get, caplog):
        caplog.set_level(logging.DEBUG)
        m_get.return_value = _response()
        readurl(
            "http://example.com", headers={"Authorization": "Bearer secret"}
        )
        assert "secret" not in caplog.text
        assert "Bearer secret" == (
            m_get.call_args[1]["headers"]["Authorization"]
        )


class TestRetryWithBackoff:
    def test_backoff_delays(self):
        assert [1, 2, 4, 8, 16, 32, 32] == list(backoff_delays(7, 1, 32))
        assert [] == list(backoff_delays(0, 1, 32))

    def test_returns_first_success(self):
        func = mock.Mock(side_effect=[OSError(), OSError(), "done"])
        m_sleep = mock.Mock()
        assert "done" == retry_with_backoff(
            func, retries=5, initial_delay=2, sleep=m_sleep
        )
        assert [mock.call(2), mock.call(4)] == m_sleep.call_args_list

    def test_raises_last_exception(self):
        errors = [OSError("first"), OSError("second")]
        func = mock.Mock(side_effect=errors)
        with pytest.raises(OSError, match="second"):
            retry_with_backoff(func, retries=1, sleep=mock.Mock())
        assert 2 == func.call_count

    def test_zero_retries(self):
        func = mock.Mock(side_effect=OSError())
        m_sleep = mock.Mock()
        with pytest.raises(OSError):
            retry_with_backoff(func, retries=0, sleep=m_sleep)
        func.assert_called_once()
        m_sleep.assert_not_called()

    def test_exception_cb(self):
        error = OSError()
        func = mock.Mock(side_effect=[error, None])
        exception_cb = mock.Mock()
        retry_with_backoff(func, exception_cb=exception_cb, sleep=mock.Mock())
        assert [mock.call(1, error)] == exception_cb.call_args_list

    def test_default_sleep_is_time_sleep(self, no_sleep):
        func = mock.Mock(side_effect=[OSError(), None])
        retry_with_backoff(func, initial_delay=3)
        assert [mock.call(3)] == no_sleep.call_args_list

    def test_only_retries_listed_exceptions(self):
        func = mock.Mock(side_effect=KeyError())
        with pytest.raises(KeyError):
            url_helper.retry_with_backoff(
                func, retry_on=(OSError,), sleep=mock.Mock()
            )
        func.assert_called_once()
