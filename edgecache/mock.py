"""A configurable request handler standing in for storage."""

from __future__ import annotations

from dataclasses import dataclass, field

from .models import Headers, Request, Response


@dataclass
class RequestHandlerMock:
    """Answers GET with fixed content and checks the body of PUT and POST."""

    http_status_code: int = 200
    headers: Headers = field(default_factory=Headers)
    response_body_content: str = ""
    expected_req_body: str = ""

    def do(self, request: Request) -> Response:
        """Return the configured response; raise ValueError on an unexpected upload body."""
        body: bytes | None = None
        if request.method == "GET":
            body = self.response_body_content.encode()
        elif request.method in ("PUT", "POST"):
            if request.body != self.expected_req_body.encode():
                raise ValueError("expected response body not arrived")
        return Response(status_code=self.http_status_code, headers=self.headers, body=body)