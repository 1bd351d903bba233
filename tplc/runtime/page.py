"""
Request-side objects generated pages run against.

This is deliberately small: a request/response pair held in memory, a
buffered page writer with body-content nesting, and the page context
that maps the four attribute scopes. A real server adapts its own
request and response to the few methods used here.
"""

from __future__ import annotations

import contextlib
import logging
import posixpath
import threading
from typing import Any, Dict, Iterable, List, Optional, Union
from urllib.parse import parse_qsl

from .constants import (
    APPLICATION_SCOPE, EXCEPTION_ATTRIBUTE, PAGE_SCOPE, REQUEST_SCOPE, SESSION_SCOPE,
)
from .el import to_string

logger = logging.getLogger(__name__)

DEFAULT_BUFFER_SIZE = 8192
DEFAULT_CHARSET = "UTF-8"


# --------------------------------------------------------------------------- #
# Request, response, session, application
# --------------------------------------------------------------------------- #
class _Attributes:
    def __init__(self) -> None:
        self.attributes: Dict[str, Any] = {}

    def get_attribute(self, name: str) -> Any:
        return self.attributes.get(name)

    def set_attribute(self, name: str, value: Any) -> None:
        if value is None:
            self.attributes.pop(name, None)
        else:
            self.attributes[name] = value

    def remove_attribute(self, name: str) -> None:
        self.attributes.pop(name, None)


class Session(_Attributes):

    def __init__(self) -> None:
        super().__init__()
        self.lock = threading.RLock()


class PageConfig:
    """Init parameters of one page."""

    def __init__(self, init_parameters: Optional[Dict[str, str]] = None):
        self.init_parameters = dict(init_parameters or {})

    def get_init_parameter(self, name: str) -> Optional[str]:
        return self.init_parameters.get(name)


class Application(_Attributes):
    """
    Application scope plus the registry of pages reachable by path, used
    by includes and forwards.
    """

    def __init__(self) -> None:
        super().__init__()
        self.lock = threading.RLock()
        self._pages: Dict[str, Any] = {}

    def register(self, path: str, page: Any) -> None:
        self._pages[path] = page

    def get_page(self, path: str) -> Any:
        try:
            return self._pages[path]
        except KeyError:
            raise LookupError(f"no page registered for {path}") from None


class Request(_Attributes):
    """
    Args:
        path: Unit path of the requested page
        parameters: Request parameters; list values hold repeated names
        method: HTTP method
        session: Session of the caller, created on demand when omitted
        application: Application the request runs in
        character_encoding: Encoding of parameter values
    """

    def __init__(
        self,
        path: str = "/",
        parameters: Optional[Dict[str, Union[str, List[str]]]] = None,
        method: str = "GET",
        session: Optional[Session] = None,
        application: Optional[Application] = None,
        character_encoding: Optional[str] = None,
    ):
        super().__init__()
        self.path = path
        self.method = method
        self.session = session
        self.application = application
        self.character_encoding = character_encoding
        self.parameters: Dict[str, List[str]] = {}
        for name, value in (parameters or {}).items():
            self.parameters[name] = list(value) if isinstance(value, (list, tuple)) else [value]

    def get_method(self) -> str:
        return self.method

    def get_parameter(self, name: str) -> Optional[str]:
        values = self.parameters.get(name)
        return values[0] if values else None

    def get_parameter_values(self, name: str) -> Optional[List[str]]:
        return self.parameters.get(name)

    def get_parameter_names(self) -> List[str]:
        return list(self.parameters)

    def get_session(self, create: bool = True) -> Optional[Session]:
        if self.session is None and create:
            self.session = Session()
        return self.session

    def get_character_encoding(self) -> Optional[str]:
        return self.character_encoding

    def derive(self, path: str, query: str = "") -> "Request":
        """Request for an included or forwarded page with extra parameters."""
        child = Request(path, method=self.method, session=self.session,
                        application=self.application,
                        character_encoding=self.character_encoding)
        for name, value in parse_qsl(query, keep_blank_values=True,
                                     encoding=self.character_encoding or DEFAULT_CHARSET):
            child.parameters.setdefault(name, []).append(value)
        for name, values in self.parameters.items():
            child.parameters.setdefault(name, []).extend(values)
        child.attributes = self.attributes
        return child


class Response:
    """Collects the output of a page in memory."""

    def __init__(self) -> None:
        self.status = 200
        self.content_type: Optional[str] = None
        self.message: Optional[str] = None
        self._chunks: List[str] = []
        self._committed = False

    def set_content_type(self, content_type: Optional[str]) -> None:
        if not self._committed:
            self.content_type = content_type

    def set_status(self, status: int) -> None:
        self.status = status

    def send_error(self, status: int, message: Optional[str] = None) -> None:
        self.status = status
        self.message = message
        self._committed = True

    def get_character_encoding(self) -> str:
        content_type = self.content_type or ""
        index = content_type.find("charset=")
        return content_type[index + 8:].strip() if index >= 0 else DEFAULT_CHARSET

    def write(self, text: str) -> None:
        if text:
            self._chunks.append(text)
            self._committed = True

    def is_committed(self) -> bool:
        return self._committed

    def get_text(self) -> str:
        return "".join(self._chunks)


class _IncludedResponse(Response):
    """Response of an included page: output goes to the including writer."""

    def __init__(self, outer: Response, out: "PageWriter"):
        super().__init__()
        self.outer = outer
        self.out = out

    def set_content_type(self, content_type: Optional[str]) -> None:
        pass

    def write(self, text: str) -> None:
        self.out.write(text)

    def is_committed(self) -> bool:
        return self.outer.is_committed()


# --------------------------------------------------------------------------- #
# Writers
# --------------------------------------------------------------------------- #
class PageWriter:
    """
    Buffered writer of a page.

    Args:
        response: Receives the output on flush
        buffer_size: Buffer size in characters; 0 writes through
        auto_flush: Flush a full buffer instead of failing
    """

    def __init__(self, response: Response, buffer_size: int = DEFAULT_BUFFER_SIZE,
                 auto_flush: bool = True):
        self.response = response
        self.buffer_size = buffer_size
        self.auto_flush = auto_flush
        self._buffer: List[str] = []
        self._count = 0

    def write(self, text: str) -> None:
        if not text:
            return
        if self.buffer_size == 0:
            self.response.write(text)
            return
        if self._count + len(text) > self.buffer_size:
            if not self.auto_flush:
                raise IOError("page buffer overflow")
            self.flush()
            if len(text) > self.buffer_size:
                self.response.write(text)
                return
        self._buffer.append(text)
        self._count += len(text)

    def print(self, value: Any) -> None:
        self.write(to_string(value))

    def flush(self) -> None:
        if self._buffer:
            self.response.write("".join(self._buffer))
        self._buffer = []
        self._count = 0

    def clear_buffer(self) -> None:
        self._buffer = []
        self._count = 0

    def get_buffer_size(self) -> int:
        return self.buffer_size

    def get_remaining(self) -> int:
        return self.buffer_size - self._count


class BodyContent:
    """
    Output of a buffered tag body.

    Args:
        enclosing: Writer in effect before the body started
        target: When given, writes go straight to this stream
    """

    def __init__(self, enclosing: Any, target: Optional[Any] = None):
        self.enclosing = enclosing
        self.target = target
        self._parts: List[str] = []

    def write(self, text: str) -> None:
        if not text:
            return
        if self.target is not None:
            self.target.write(text)
        else:
            self._parts.append(text)

    def print(self, value: Any) -> None:
        self.write(to_string(value))

    def get_string(self) -> str:
        return "".join(self._parts)

    def clear(self) -> None:
        self._parts = []

    clear_buffer = clear

    def flush(self) -> None:
        pass

    def get_buffer_size(self) -> int:
        return 0 if self.target is not None else len(self.get_string())

    def write_out(self, writer: Any) -> None:
        writer.write(self.get_string())

    def get_enclosing_writer(self) -> Any:
        return self.enclosing


# --------------------------------------------------------------------------- #
# Page context
# --------------------------------------------------------------------------- #
class PageContext:
    """
    Everything a page needs while it runs: the scopes, the current
    writer and the request/response pair.
    """

    def __init__(self, page: Any, request: Request, response: Response,
                 error_page: Optional[str] = None, need_session: bool = True,
                 buffer_size: int = DEFAULT_BUFFER_SIZE, auto_flush: bool = True):
        self.page = page
        self.request = request
        self.response = response
        self.error_page = error_page
        if request.application is None:
            request.application = page.application
        self.application = request.application
        self.config = page.config
        self.session = request.get_session() if need_session else None
        self._attributes: Dict[str, Any] = {}
        self._base_out = PageWriter(response, buffer_size, auto_flush)
        self.out: Any = self._base_out
        self._writers: List[Any] = []

    # --------------------------------------------------------------- objects

    def get_out(self) -> Any:
        return self.out

    def get_request(self) -> Request:
        return self.request

    def get_response(self) -> Response:
        return self.response

    def get_session(self) -> Optional[Session]:
        return self.session

    def get_servlet_context(self) -> Application:
        return self.application

    def get_servlet_config(self) -> PageConfig:
        return self.config

    def get_page(self) -> Any:
        return self.page

    # -------------------------------------------------------------- writers

    def push_body(self, writer: Optional[Any] = None) -> BodyContent:
        self._writers.append(self.out)
        self.out = BodyContent(self.out, writer)
        return self.out

    def pop_body(self) -> Any:
        self.out = self._writers.pop()
        return self.out

    # --------------------------------------------------------------- scopes

    def _scope(self, scope: int) -> Dict[str, Any]:
        if scope == PAGE_SCOPE:
            return self._attributes
        if scope == REQUEST_SCOPE:
            return self.request.attributes
        if scope == SESSION_SCOPE:
            if self.session is None:
                raise RuntimeError("page does not participate in a session")
            return self.session.attributes
        if scope == APPLICATION_SCOPE:
            return self.application.attributes
        raise ValueError(f"invalid scope: {scope}")

    def get_attribute(self, name: str, scope: int = PAGE_SCOPE) -> Any:
        return self._scope(scope).get(name)

    def set_attribute(self, name: str, value: Any, scope: int = PAGE_SCOPE) -> None:
        if value is None:
            self._scope(scope).pop(name, None)
        else:
            self._scope(scope)[name] = value

    def remove_attribute(self, name: str, scope: Optional[int] = None) -> None:
        if scope is not None:
            self._scope(scope).pop(name, None)
            return
        for s in self._scopes():
            self._scope(s).pop(name, None)

    def _scopes(self) -> Iterable[int]:
        yield PAGE_SCOPE
        yield REQUEST_SCOPE
        if self.session is not None:
            yield SESSION_SCOPE
        yield APPLICATION_SCOPE

    def find_attribute(self, name: str) -> Any:
        for scope in self._scopes():
            value = self._scope(scope).get(name)
            if value is not None:
                return value
        return None

    def get_attributes_scope(self, name: str) -> int:
        for scope in self._scopes():
            if name in self._scope(scope):
                return scope
        return 0

    def scope_lock(self, scope: int):
        """Lock guarding check-then-create of a shared bean."""
        if scope == SESSION_SCOPE and self.session is not None:
            return self.session.lock
        if scope == APPLICATION_SCOPE:
            return self.application.lock
        return contextlib.nullcontext()

    # ------------------------------------------------------------- dispatch

    def include(self, path: str, flush: bool = True) -> None:
        include(self.request, self.response, path, self.out, flush)

    def forward(self, path: str) -> None:
        self.out.clear_buffer()
        target, query = _resolve(self.request, path)
        page = self.application.get_page(target)
        page.service(self.request.derive(target, query), self.response)

    def handle_page_exception(self, exc: BaseException) -> None:
        if self.error_page is None:
            raise exc
        logger.debug("forwarding %s to error page %s", type(exc).__name__, self.error_page)
        self.request.set_attribute(EXCEPTION_ATTRIBUTE, exc)
        self.forward(self.error_page)

    def release(self) -> None:
        while self._writers:
            self.pop_body()
        self._base_out.flush()


def _resolve(request: Request, url: str):
    path, _, query = url.partition("?")
    if not path.startswith("/"):
        path = posixpath.normpath(posixpath.join(posixpath.dirname(request.path), path))
    return path, query


def include(request: Request, response: Response, url: str, out: Any, flush: bool) -> None:
    """Run the page at ``url`` and write its output to ``out``."""
    if flush and not isinstance(out, BodyContent):
        out.flush()
    target, query = _resolve(request, url)
    page = request.application.get_page(target)
    page.service(request.derive(target, query), _IncludedResponse(response, out))


def get_throwable(request: Request) -> Optional[BaseException]:
    return request.get_attribute(EXCEPTION_ATTRIBUTE)


# --------------------------------------------------------------------------- #
# Pages
# --------------------------------------------------------------------------- #
class PageBase:
    """
    Base class of generated pages.

    Args:
        application: Application the page runs in
        config: Init parameters of the page
    """

    is_thread_safe = True

    def __init__(self, application: Optional[Application] = None,
                 config: Optional[PageConfig] = None):
        self.application = application or Application()
        self.config = config or PageConfig()
        self._service_lock = threading.Lock()
        self._tplc_init(self.config)

    def _tplc_init(self, config: Optional[PageConfig] = None) -> None:
        pass

    def _tplc_destroy(self) -> None:
        pass

    def destroy(self) -> None:
        self._tplc_destroy()

    def get_dependants(self) -> Dict[str, int]:
        return {}

    def get_imports(self) -> List[str]:
        return []

    def get_page_context(self, request: Request, response: Response, error_page: Optional[str],
                         need_session: bool, buffer_size: int, auto_flush: bool) -> PageContext:
        return PageContext(self, request, response, error_page, need_session, buffer_size, auto_flush)

    def release_page_context(self, page_context: Optional[PageContext]) -> None:
        if page_context is not None:
            page_context.release()

    def service(self, request: Request, response: Response) -> None:  # pragma: no cover
        raise NotImplementedError

    def render(self, request: Optional[Request] = None) -> str:
        """Serve ``request`` into a fresh response and return its text."""
        request = request or Request(application=self.application)
        response = Response()
        if self.is_thread_safe:
            self.service(request, response)
        else:
            with self._service_lock:
                self.service(request, response)
        return response.get_text()


__all__ = [
    "Application", "BodyContent", "PageBase", "PageConfig", "PageContext", "PageWriter",
    "Request", "Response", "Session", "include", "get_throwable",
    "DEFAULT_BUFFER_SIZE",
]
