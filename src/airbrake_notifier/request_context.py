import logging
from typing import Any, Mapping

from pydantic import BaseModel, Field
from werkzeug.wrappers import Request

logger = logging.getLogger(__name__)

# WSGI environ entries whose values are server objects rather than request data.
_NON_CGI_PREFIXES = ("wsgi.", "werkzeug.")


class RequestContext(BaseModel):
    """
    The request an error happened in, handed over explicitly by the caller.

    `request` holds the overrides used for the reported component, action and URL
    (`controller`, `action`, `url`). `get`, `post`, `cookies` and `files` are reported as
    request params, `session` as the session and `server` as CGI data.
    """

    request: dict[str, Any] = Field(default_factory=dict)
    get: dict[str, Any] = Field(default_factory=dict)
    post: dict[str, Any] = Field(default_factory=dict)
    cookies: dict[str, Any] = Field(default_factory=dict)
    files: dict[str, Any] = Field(default_factory=dict)
    session: dict[str, Any] | None = None
    server: dict[str, Any] = Field(default_factory=dict)

    def param_buckets(self) -> dict[str, dict[str, Any]]:
        return {
            "_GET": self.get,
            "_POST": self.post,
            "_COOKIE": self.cookies,
            "_FILES": self.files,
        }

    @classmethod
    def from_wsgi_environ(
        cls, environ: Mapping[str, Any], session: Mapping[str, Any] | None = None
    ) -> "RequestContext":
        request = Request(dict(environ))
        get = request.args.to_dict()
        post = request.form.to_dict()
        cookies = request.cookies.to_dict()
        files = {
            name: {
                "name": storage.filename,
                "type": storage.mimetype,
                "size": storage.content_length,
            }
            for name, storage in request.files.items()
        }

        server = {
            key: value
            for key, value in environ.items()
            if isinstance(value, str) and not key.startswith(_NON_CGI_PREFIXES)
        }
        if "REQUEST_URI" not in server:
            uri = request.full_path if request.query_string else request.path
            server["REQUEST_URI"] = uri

        return cls(
            request={**cookies, **get, **post},
            get=get,
            post=post,
            cookies=cookies,
            files=files,
            session=dict(session) if session is not None else None,
            server=server,
        )
