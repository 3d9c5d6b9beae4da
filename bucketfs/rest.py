from __future__ import annotations

import json
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Optional, Union

import httpx

from .errors import BucketFsError, HTTPError
from .version import USER_AGENT

ErrorHandler = Callable[[httpx.Response], Exception]


def default_error_handler(response: httpx.Response) -> Exception:
    """Wrap the unparsed body and status line into an HTTPError."""
    try:
        body = response.read()
    finally:
        response.close()
    return HTTPError(
        f"HTTP error {response.status_code} ({response.reason_phrase}) "
        f"returned body: {body!r}",
        status_code=response.status_code,
        body=body,
    )


@dataclass(frozen=True)
class Opts:
    method: str
    path: str
    absolute: bool = False
    body: Union[bytes, str, None] = None
    no_response: bool = False
    content_type: str = ""
    content_length: Optional[int] = None
    content_range: str = ""
    extra_headers: dict[str, str] = field(default_factory=dict)
    user_name: str = ""
    password: str = ""


class RestClient:
    def __init__(self, http_client: Optional[httpx.Client] = None) -> None:
        self._http = http_client or httpx.Client()
        self._root_url = ""
        self._error_handler: ErrorHandler = default_error_handler
        self._headers: dict[str, str] = {}
        self.set_header("User-Agent", USER_AGENT)

    def set_error_handler(self, handler: ErrorHandler) -> "RestClient":
        self._error_handler = handler
        return self

    def set_root(self, root_url: str) -> "RestClient":
        self._root_url = root_url
        return self

    def set_header(self, key: str, value: str) -> "RestClient":
        self._headers[key] = value
        return self

    def close(self) -> None:
        self._http.close()

    def call(self, opts: Opts) -> httpx.Response:
        """Make the request described by ``opts``.

        The response body is streamed; close it unless ``no_response`` was
        set. A non-2xx status raises whatever the error handler returns.
        """
        if opts.absolute:
            url = opts.path
        else:
            if not self._root_url:
                raise BucketFsError("root URL not set")
            url = self._root_url + opts.path

        headers = dict(self._headers)
        if opts.content_type:
            headers["Content-Type"] = opts.content_type
        if opts.content_length is not None:
            headers["Content-Length"] = str(opts.content_length)
        if opts.content_range:
            headers["Content-Range"] = opts.content_range
        headers.update(opts.extra_headers)

        auth = None
        if opts.user_name or opts.password:
            auth = httpx.BasicAuth(opts.user_name, opts.password)

        request = self._http.build_request(
            opts.method, url, content=opts.body, headers=headers
        )
        response = self._http.send(request, auth=auth, stream=True)
        if response.status_code < 200 or response.status_code > 299:
            raise self._error_handler(response)
        if opts.no_response:
            response.close()
        return response

    def call_json(
        self, opts: Opts, request: Any = None
    ) -> tuple[httpx.Response, Any]:
        """``call`` with a JSON request body and a decoded JSON result."""
        if opts.body is None and request is not None:
            opts = replace(
                opts,
                body=json.dumps(request).encode("utf-8"),
                content_type="application/json",
            )
        response = self.call(opts)
        if opts.no_response:
            return response, None
        try:
            payload = response.read()
        finally:
            response.close()
        if not payload:
            return response, None
        return response, json.loads(payload)
