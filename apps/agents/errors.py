from __future__ import annotations


class UpstreamError(Exception):
    """Raised when a registry-wide chain read (count or batch aggregation) fails."""

    def __init__(self, operation: str, registry: str, detail: str) -> None:
        super().__init__(f'{operation} failed for registry={registry}: {detail}')
        self.operation = operation
        self.registry = registry
        self.detail = detail
