"""Static route table.

Patterns are compiled once into a tuple of segments: a ``str`` is a literal
that must match exactly, a ``Param`` captures one non-empty path segment.
Lookup tries the literal paths first, then the placeholder patterns in the
order they were added; the first match wins.
"""
from typing import Callable, Dict, List, NamedTuple, Optional, Tuple


class Param(NamedTuple):
    name: str


def split_path(path: str) -> List[str]:
    # Пустые сегменты (например, "//tickets") сохраняются и не совпадут с шаблоном
    if path in ("", "/"):
        return []
    return (path[1:] if path.startswith("/") else path).split("/")


def normalize_path(path: str) -> str:
    if path != "/" and path.endswith("/"):
        path = path.rstrip("/") or "/"
    return path or "/"


class PathMatcher:
    def __init__(self, pattern: str):
        self.pattern = normalize_path(pattern)
        self.segments = tuple(
            Param(segment[1:-1]) if segment.startswith("{") and segment.endswith("}") else segment
            for segment in split_path(self.pattern)
        )
        self.is_literal = not any(isinstance(segment, Param) for segment in self.segments)

    def match(self, path: str) -> Optional[Dict[str, str]]:
        parts = split_path(path)
        if len(parts) != len(self.segments):
            return None

        params = {}
        for segment, part in zip(self.segments, parts):
            if isinstance(segment, Param):
                if not part:
                    return None
                params[segment.name] = part
            elif segment != part:
                return None
        return params

    def __repr__(self):
        return f"<PathMatcher {self.pattern}>"


class Route(NamedTuple):
    method: str
    matcher: PathMatcher
    handler: Callable
    public: bool = False


class Router:
    def __init__(self):
        self._exact: Dict[Tuple[str, str], Route] = {}
        self._patterns: List[Route] = []

    def add(self, method: str, pattern: str, handler: Callable, public: bool = False) -> Route:
        route = Route(method.upper(), PathMatcher(pattern), handler, public)
        if route.matcher.is_literal:
            # Первая объявленная литеральная запись не перезаписывается
            self._exact.setdefault((route.method, route.matcher.pattern), route)
        else:
            self._patterns.append(route)
        return route

    def get(self, pattern: str, handler: Callable, public: bool = False) -> Route:
        return self.add("GET", pattern, handler, public)

    def post(self, pattern: str, handler: Callable, public: bool = False) -> Route:
        return self.add("POST", pattern, handler, public)

    @property
    def routes(self) -> List[Route]:
        return list(self._exact.values()) + self._patterns

    def match(self, method: str, path: str) -> Optional[Tuple[Route, Dict[str, str]]]:
        method = method.upper()
        path = normalize_path(path)

        route = self._exact.get((method, path))
        if route is not None:
            return route, {}

        for route in self._patterns:
            if route.method != method:
                continue
            params = route.matcher.match(path)
            if params is not None:
                return route, params
        return None
