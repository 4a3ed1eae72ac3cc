"""Request routing by HTTP method and path pattern."""

import re
from dataclasses import dataclass, field
from typing import Generic, Optional, TypeVar

from easysrv.domain.errors import RouteError

H = TypeVar("H")

DEFAULT_VARIABLE_PATTERN = "[^/]+"


@dataclass
class RouteMatch(Generic[H]):
    """Outcome of matching a request against the route table."""

    name: str
    handler: H
    vars: dict[str, str] = field(default_factory=dict)
    redirect_to: Optional[str] = None
    allowed: list[str] = field(default_factory=list)


@dataclass
class _CompiledRoute(Generic[H]):
    name: str
    method: str
    pattern: str
    regex: re.Pattern
    trailing_slash: bool
    handler: H


def _variable_spans(pattern: str) -> list[tuple[int, int]]:
    """Return the (start, end) span of every balanced ``{...}`` group."""
    spans = []
    depth = 0
    start = 0
    for index, char in enumerate(pattern):
        if char == "{":
            if depth == 0:
                start = index
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                spans.append((start, index + 1))
            elif depth < 0:
                raise RouteError(f"unbalanced braces in route pattern {pattern!r}")
    if depth != 0:
        raise RouteError(f"unbalanced braces in route pattern {pattern!r}")
    return spans


def compile_pattern(pattern: str, strict_slash: bool = False) -> re.Pattern:
    """Compile a ``/items/{id}`` or ``/items/{id:[0-9]+}`` pattern to a regex.

    With ``strict_slash`` a single trailing slash becomes optional so the
    router can redirect to the registered form.
    """
    if not pattern.startswith("/"):
        raise RouteError(f"route pattern must start with '/': {pattern!r}")

    parts = []
    names = set()
    cursor = 0
    for start, end in _variable_spans(pattern):
        parts.append(re.escape(pattern[cursor:start]))
        name, _, expression = pattern[start + 1 : end - 1].partition(":")
        name = name.strip()
        if not name.isidentifier() or name in names:
            raise RouteError(f"invalid variable {name!r} in route pattern {pattern!r}")
        names.add(name)
        parts.append(f"(?P<{name}>{expression or DEFAULT_VARIABLE_PATTERN})")
        cursor = end
    parts.append(re.escape(pattern[cursor:]))

    body = "".join(parts)
    if strict_slash and pattern != "/":
        if body.endswith("/"):
            body = body[:-1]
        body = f"{body}/?"
    try:
        return re.compile(f"^{body}$")
    except re.error as exc:
        raise RouteError(f"invalid route pattern {pattern!r}: {exc}") from exc


def _method_matches(route_method: str, method: str) -> bool:
    # GET routes also answer HEAD.
    if not route_method or route_method == method:
        return True
    return method == "HEAD" and route_method == "GET"


class Router(Generic[H]):
    """Ordered route table where the first matching route wins."""

    def __init__(
        self,
        not_found_handler: H,
        method_not_allowed_handler: H,
        strict_slash: bool = False,
    ) -> None:
        self.not_found_handler = not_found_handler
        self.method_not_allowed_handler = method_not_allowed_handler
        self.strict_slash = strict_slash
        self._routes: list[_CompiledRoute[H]] = []

    def add(self, name: str, method: str, pattern: str, handler: H) -> None:
        """Register a route; an empty method matches every method."""
        self._routes.append(
            _CompiledRoute(
                name=name,
                method=method.upper(),
                pattern=pattern,
                regex=compile_pattern(pattern, self.strict_slash),
                trailing_slash=pattern.endswith("/"),
                handler=handler,
            )
        )

    def __len__(self) -> int:
        return len(self._routes)

    def match(self, method: str, path: str) -> RouteMatch[H]:
        """Resolve a request to a route, a 405 fallback or the 404 fallback."""
        method = method.upper()
        allowed: list[str] = []
        for route in self._routes:
            found = route.regex.match(path)
            if found is None:
                continue
            if not _method_matches(route.method, method):
                if route.method not in allowed:
                    allowed.append(route.method)
                continue
            return RouteMatch(
                name=route.name,
                handler=route.handler,
                vars=found.groupdict(),
                redirect_to=self._redirect_target(route, path),
            )

        if allowed:
            return RouteMatch(
                "Handler405", self.method_not_allowed_handler, allowed=allowed
            )
        return RouteMatch("Handler404", self.not_found_handler)

    def _redirect_target(self, route: _CompiledRoute[H], path: str) -> Optional[str]:
        if not self.strict_slash or route.pattern == "/":
            return None
        if route.trailing_slash and not path.endswith("/"):
            return f"{path}/"
        if not route.trailing_slash and path.endswith("/"):
            return path[:-1]
        return None
