"""Best-effort forwarding of the exported graph to an external endpoint."""

import logging
from typing import Optional

from shared.exceptions import PushError
from shared.http_fetch import ExternalFetch
from shared.models import SyncSnapshot

logger = logging.getLogger(__name__)


class PushStage:
    """Posts the snapshot to the export URL, never failing the run."""

    def __init__(self, fetch: ExternalFetch, export_url: Optional[str]):
        self.fetch = fetch
        self.export_url = export_url

    async def push(self, snapshot: SyncSnapshot) -> bool:
        """
        Post the graph to the export URL, if one is configured.

        Returns:
            True if the endpoint accepted the snapshot
        """
        if not self.export_url:
            return False

        try:
            response = await self.fetch.post_json(
                self.export_url,
                {
                    "graphContent": snapshot.raw,
                    "graphName": snapshot.graph_name
                }
            )
        except Exception as e:
            error = PushError(f"Pushing graph to {self.export_url} failed: {e}", e)
            logger.error(f"{error.kind}: {error}")
            return False

        logger.info(f"Updated in your remote URL: {response}")
        return True
