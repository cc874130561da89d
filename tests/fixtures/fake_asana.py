"""
FakeAsanaClient - canned Asana responses for collector and browser tests.

Pages are given per endpoint as a list of item lists; offsets are generated
("off-1", "off-2", ...) so a test can assert exactly which offsets were sent.
"""

import threading

from engine.asana_client import AsanaPage


class FakeAsanaClient:
    def __init__(
        self,
        pages: dict[str, list[list[dict]]] | None = None,
        objects: dict[str, dict] | None = None,
        errors: dict[str, Exception] | None = None,
        before_page=None,
    ):
        self.pages = pages or {}
        self.objects = objects or {}
        self.errors = errors or {}
        self.before_page = before_page
        self.calls: list[tuple[str, dict]] = []
        self._lock = threading.Lock()

    def _record(self, endpoint: str, params: dict | None) -> None:
        with self._lock:
            self.calls.append((endpoint, dict(params or {})))
        if endpoint in self.errors:
            raise self.errors[endpoint]

    def url_for(self, endpoint: str, params: dict | None = None) -> str:
        return f"https://fake.asana/{endpoint}"

    def get_page(self, endpoint: str, params: dict | None = None) -> AsanaPage:
        if self.before_page:
            self.before_page(endpoint, params or {})
        self._record(endpoint, params)
        pages = self.pages.get(endpoint, [[]])
        offset = (params or {}).get("offset", "")
        index = int(offset.split("-")[1]) if offset else 0
        next_offset = f"off-{index + 1}" if index + 1 < len(pages) else ""
        return AsanaPage(data=pages[index], next_offset=next_offset, url=self.url_for(endpoint))

    def get_object(self, endpoint: str, params: dict | None = None) -> dict:
        self._record(endpoint, params)
        return self.objects.get(endpoint, {})

    def me(self) -> dict:
        return self.get_object("users/me")

    def endpoints(self) -> list[str]:
        return [endpoint for endpoint, _ in self.calls]
