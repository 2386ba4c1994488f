"""
=============================================================================
MIDDLEWARE BASE
=============================================================================

A middleware is an object with one capability: process a request and
optionally continue to the next stage.

=============================================================================
THE ONION, AS A LIST
=============================================================================

    pipeline = MiddlewarePipeline([logger, cors, request_id])
    pipeline.run(request, handler)

    position 0 ─► logger ──────────────────────────────┐
    position 1 ─►   cors ───────────────────────┐      │
    position 2 ─►     request_id ─────────┐     │      │
    position 3 ─►       handler           │     │      │
                          │               │     │      │
                          ▼               │     │      │
                       response ──────────┴─────┴──────┴──► client

The pipeline never builds nested closures up front. ``run`` walks the list
by position: the ``next`` a stage receives is a small callable object that
remembers the position of the following stage. Ordering is simply the list
order, and any stage can be inspected or tested in isolation.

=============================================================================
SHORT-CIRCUITING
=============================================================================

A stage that returns without calling ``next`` ends the request there:

    class DenyAll(Middleware):
        def __call__(self, request, next):
            return failure(HTTPStatus.FORBIDDEN, "nope")   # handler never runs

=============================================================================
"""

from abc import ABC, abstractmethod
from typing import Callable, Iterable, Iterator, List, Optional
import logging

from ..http.request import HTTPRequest
from ..http.response import HTTPResponse

logger = logging.getLogger(__name__)


NextHandler = Callable[[HTTPRequest], HTTPResponse]


class Middleware(ABC):
    """
    Base class for pipeline stages.

    Subclasses implement ``__call__(request, next)`` and either return
    ``next(request)`` (possibly after changing the request or the response)
    or return a response of their own.
    """

    @abstractmethod
    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        pass

    @property
    def name(self) -> str:
        return self.__class__.__name__


class _Next:
    """The ``next`` callable handed to the stage at ``position - 1``."""

    __slots__ = ("_pipeline", "_handler", "_position")

    def __init__(self, pipeline: "MiddlewarePipeline", handler: NextHandler, position: int):
        self._pipeline = pipeline
        self._handler = handler
        self._position = position

    def __call__(self, request: HTTPRequest) -> HTTPResponse:
        return self._pipeline._run_from(self._position, request, self._handler)


class MiddlewarePipeline:
    """
    Ordered list of middleware, outermost first.

    Example:
        pipeline = MiddlewarePipeline()
        pipeline.use(LoggingMiddleware(), CORSMiddleware())
        response = pipeline.run(request, handler)
    """

    def __init__(self, middleware: Optional[Iterable[Middleware]] = None):
        self._middleware: List[Middleware] = list(middleware or [])

    def add(self, middleware: Middleware) -> "MiddlewarePipeline":
        self._middleware.append(middleware)
        logger.debug(f"Added middleware: {middleware.name}")
        return self

    def use(self, *middleware: Middleware) -> "MiddlewarePipeline":
        for mw in middleware:
            self.add(mw)
        return self

    def run(self, request: HTTPRequest, handler: NextHandler) -> HTTPResponse:
        """Run every stage in order, then ``handler`` (unless a stage stops early)."""
        return self._run_from(0, request, handler)

    def _run_from(self, position: int, request: HTTPRequest, handler: NextHandler) -> HTTPResponse:
        if position >= len(self._middleware):
            return handler(request)
        stage = self._middleware[position]
        return stage(request, _Next(self, handler, position + 1))

    def wrap(self, handler: NextHandler) -> NextHandler:
        """Bind ``handler`` as the innermost stage and return a single callable."""
        return _Next(self, handler, 0)

    def __len__(self) -> int:
        return len(self._middleware)

    def __iter__(self) -> Iterator[Middleware]:
        return iter(self._middleware)


class FunctionMiddleware(Middleware):
    """Adapter so a plain ``func(request, next)`` can sit in a pipeline."""

    def __init__(
        self,
        func: Callable[[HTTPRequest, NextHandler], HTTPResponse],
        name: Optional[str] = None
    ):
        self._func = func
        self._name = name or func.__name__

    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        return self._func(request, next)

    @property
    def name(self) -> str:
        return self._name


def function_middleware(
    func: Callable[[HTTPRequest, NextHandler], HTTPResponse]
) -> FunctionMiddleware:
    """
    Decorator form of FunctionMiddleware.

        @function_middleware
        def add_version(request, next):
            response = next(request)
            response.headers["X-Version"] = "1"
            return response
    """
    return FunctionMiddleware(func)
