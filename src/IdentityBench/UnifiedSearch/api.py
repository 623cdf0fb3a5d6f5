"""Transport-agnostic request handler for unified search.

``UnifiedSearchAPI`` converts a decoded JSON payload into a
:class:`UnifiedSearchRequest`, runs it through :class:`UnifiedSearchService`
and maps the outcome onto an HTTP status plus a JSON-serialisable body. Web
framework adapters only need to forward the payload and write the tuple back.
"""

from __future__ import annotations

from http import HTTPStatus
from typing import Any, Mapping, Tuple

from .errors import (
    RequestValidationError,
    SearchCancelledError,
    SearchCollaboratorError,
)
from .service import UnifiedSearchService
from .types import UnifiedSearchRequest

__all__ = ("UnifiedSearchAPI",)

_MODES = {"strict": False, "best_effort": True}


class UnifiedSearchAPI:
    """Handle ``POST /v1/unified-search`` style requests.

    Examples:
        >>> api = UnifiedSearchAPI(service)  # doctest: +SKIP
        >>> status, body = api.post_unified_search(  # doctest: +SKIP
        ...     {"terms": ["555-201-0001", "1111"], "use_case": "UC1", "limit": 5}
        ... )
    """

    def __init__(self, service: UnifiedSearchService) -> None:
        if not isinstance(service, UnifiedSearchService):
            raise TypeError("service must be a UnifiedSearchService instance")
        self._service = service

    def post_unified_search(self, payload: Mapping[str, Any]) -> Tuple[int, Mapping[str, Any]]:
        """Execute a search and return ``(status, body)``.

        Args:
            payload: Mapping with ``terms`` (list of strings), ``use_case``
                (``"UC1"``..``"UC7"`` or 1-7), optional ``limit`` (default 10)
                and optional ``mode`` (``"strict"`` or ``"best_effort"``).

        Returns:
            - 200 with ``results``, ``query`` and diagnostics on success
            - 400 for malformed payloads or validation failures
            - 502 when the search collaborator fails
            - 504 when the request deadline expires before the search call
        """
        try:
            request = self._parse_request(payload)
        except (KeyError, TypeError, ValueError) as exc:
            return HTTPStatus.BAD_REQUEST, {"error": str(exc)}

        try:
            response = self._service.search(request)
        except RequestValidationError as exc:
            return HTTPStatus.BAD_REQUEST, {"error": str(exc), "field": exc.field}
        except SearchCancelledError as exc:
            return HTTPStatus.GATEWAY_TIMEOUT, {"error": str(exc)}
        except SearchCollaboratorError as exc:
            return HTTPStatus.BAD_GATEWAY, {"error": str(exc)}

        return HTTPStatus.OK, response.as_dict()

    def _parse_request(self, payload: Mapping[str, Any]) -> UnifiedSearchRequest:
        if not isinstance(payload, Mapping):
            raise TypeError("payload must be a JSON object")
        terms = payload["terms"]
        if isinstance(terms, str) or not isinstance(terms, (list, tuple)):
            raise TypeError("terms must be a list of strings")
        mode = str(payload.get("mode", "strict")).lower()
        if mode not in _MODES:
            raise ValueError(f"mode must be one of {sorted(_MODES)}")
        limit = payload.get("limit")
        if limit is None:
            limit = self._service.config.ranking.default_limit
        if isinstance(limit, bool) or not isinstance(limit, (int, str)):
            raise TypeError("limit must be an integer")
        return UnifiedSearchRequest(
            terms=[None if term is None else str(term) for term in terms],
            use_case=payload.get("use_case"),
            limit=int(limit),
            best_effort=_MODES[mode],
        )
