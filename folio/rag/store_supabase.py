"""Supabase (pgvector) store accessed through the PostgREST API.

Handles:
- Similarity search via the ``match_documents`` stored procedure
- Row inserts for the seeding pipeline
- Clearing the table before a rebuild

The stored procedure is expected to compute ``1 - (embedding <=> query)``
(cosine distance) and return rows above the threshold ordered by distance.
"""
from typing import Any, Dict, List, Optional

import httpx
import structlog

from folio import config
from folio.errors import (
    UpstreamProtocolError,
    error_from_response,
    error_from_transport,
)

logger = structlog.get_logger()

PROVIDER = "supabase"


class SupabaseVectorStore:
    """Read/write access to the hosted documents table."""

    def __init__(
        self,
        url: str = None,
        api_key: str = None,
        table: str = None,
        match_function: str = None,
        timeout: float = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the store.

        Args:
            url: Project URL (default from config)
            api_key: Anon key for reads or service-role key for writes
            table: Table holding content/embedding rows
            match_function: Name of the similarity stored procedure
            timeout: Per-call timeout in seconds
            transport: Optional httpx transport (used by tests)
        """
        self.url = (url or config.SUPABASE_URL).rstrip("/")
        self.api_key = api_key if api_key is not None else config.SUPABASE_ANON_KEY
        self.table = table or config.SUPABASE_TABLE
        self.match_function = match_function or config.SUPABASE_MATCH_FUNCTION
        self.timeout = timeout or config.UPSTREAM_TIMEOUT
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=f"{self.url}/rest/v1",
            timeout=self.timeout,
            transport=self._transport,
            headers={
                "apikey": self.api_key,
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
            },
        )

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            async with self._client() as client:
                response = await client.request(method, path, **kwargs)
        except httpx.RequestError as e:
            logger.error("supabase_unreachable", error=str(e), path=path)
            raise error_from_transport(e, PROVIDER) from e

        if response.is_error:
            error = error_from_response(response, PROVIDER)
            logger.error(
                "supabase_request_failed",
                path=path,
                status_code=response.status_code,
                error=str(error),
            )
            raise error

        return response

    async def match_documents(
        self,
        query_embedding: List[float],
        match_threshold: float,
        match_count: int,
    ) -> List[Dict[str, Any]]:
        """Call the similarity stored procedure.

        Returns:
            Rows with id, content and similarity, best match first

        Raises:
            UpstreamUnavailable: On connection or query failure
        """
        response = await self._request(
            "POST",
            f"/rpc/{self.match_function}",
            json={
                "query_embedding": query_embedding,
                "match_threshold": match_threshold,
                "match_count": match_count,
            },
        )

        try:
            rows = response.json()
        except ValueError as e:
            raise UpstreamProtocolError("Supabase returned invalid JSON", provider=PROVIDER) from e

        # PostgREST returns null for an empty setof in some versions
        if rows is None:
            return []
        if not isinstance(rows, list):
            raise UpstreamProtocolError(
                f"Unexpected match result type: {type(rows).__name__}", provider=PROVIDER
            )

        logger.debug("supabase_match_completed", rows=len(rows))
        return rows

    async def insert_document(self, content: str, embedding: List[float]) -> None:
        """Insert one knowledge row."""
        await self._request(
            "POST",
            f"/{self.table}",
            json={"content": content, "embedding": embedding},
            headers={"Prefer": "return=minimal"},
        )
        logger.debug("supabase_row_inserted", content_preview=content[:20])

    async def clear(self) -> None:
        """Delete every row (PostgREST refuses unfiltered deletes, so filter on id)."""
        await self._request("DELETE", f"/{self.table}", params={"id": "gte.0"})
        logger.warning("supabase_table_cleared", table=self.table)

    async def count(self) -> int:
        """Count stored rows."""
        response = await self._request(
            "HEAD",
            f"/{self.table}",
            params={"select": "id"},
            headers={"Prefer": "count=exact"},
        )
        # Content-Range: 0-5/6 or */0
        content_range = response.headers.get("content-range", "*/0")
        try:
            return int(content_range.rsplit("/", 1)[-1])
        except ValueError as e:
            raise UpstreamProtocolError(
                f"Unexpected Content-Range header: {content_range}", provider=PROVIDER
            ) from e

    def get_stats(self) -> Dict[str, Any]:
        return {
            "backend": "supabase",
            "url": self.url,
            "table": self.table,
            "match_function": self.match_function,
        }

