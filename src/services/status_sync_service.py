"""
Status synchronization - follows the parliament's handling of submitted cases
"""

import logging
from typing import Dict, List, Optional

from config import settings
from database.postgres_store import get_record_store
from models.enums import ParliamentFlowStatus
from services.parliament_client import ParliamentClient, get_parliament_client
from services.record_store import RecordStore

logger = logging.getLogger(__name__)


class StatusSyncService:
    def __init__(
        self,
        store: RecordStore,
        client: ParliamentClient,
        status_mapping: Dict[ParliamentFlowStatus, str] = settings.PARLIAMENT_STATUS_MAPPING,
    ):
        self.store = store
        self.client = client
        self.status_mapping = status_mapping

    async def sync_flows_by_status(self, statuses: List[ParliamentFlowStatus]) -> int:
        """
        Poll the status history of every flow in one of the given statuses

        Flows whose history shows they're being handled in committee move to
        BEING_HANDLED. A flow without history is left alone: the parliament
        may simply not have started on it. Returns the number of flows updated.
        """
        being_handled = self.status_mapping[ParliamentFlowStatus.BEING_HANDLED]
        flows = await self.store.get_flows_by_status(statuses)
        logger.info(f"Checking parliament status of {len(flows)} flow(s)")

        updated = 0
        for flow in flows:
            if not flow.parliament_id:
                continue
            try:
                history = await self.client.fetch_status_history(flow.parliament_id)
                if history is None:
                    logger.info(f"No status history yet for {flow.parliament_id}")
                    continue
                if history.has_status(being_handled):
                    await self.store.update_parliament_flow_status(
                        flow.parliament_flow_id, ParliamentFlowStatus.BEING_HANDLED
                    )
                    updated += 1
                    logger.info(f"Flow {flow.parliament_id} is being handled in committee")
            except Exception as e:
                logger.error(f"Checking the status of flow {flow.parliament_id} failed: {e}")
        return updated

    async def sync_submitted_flows(self, since_days: Optional[int] = None) -> int:
        """
        Align local flows with the parliament's list of submitted cases

        Reissued external ids are rewritten first, then every listed flow
        moves to BEING_HANDLED. Returns the number of flows updated.
        """
        try:
            entries = await self.client.fetch_submitted_list(since_days)
        except Exception as e:
            logger.error(f"Fetching submitted flows failed: {e}")
            return 0

        for entry in entries:
            if entry.previous_parliament_id and entry.previous_parliament_id != entry.parliament_id:
                try:
                    count = await self.store.replace_parliament_id(entry.previous_parliament_id, entry.parliament_id)
                except Exception as e:
                    logger.error(f"Replacing parliament id {entry.previous_parliament_id} failed: {e}")
                    continue
                if count:
                    logger.info(f"Parliament id {entry.previous_parliament_id} was reissued as {entry.parliament_id}")

        parliament_ids = list(dict.fromkeys(entry.parliament_id for entry in entries))
        if not parliament_ids:
            return 0

        updated = 0
        flows = await self.store.get_flows_by_parliament_ids(parliament_ids)
        for flow in flows:
            if flow.status == ParliamentFlowStatus.BEING_HANDLED:
                continue
            try:
                await self.store.update_parliament_flow_status(
                    flow.parliament_flow_id, ParliamentFlowStatus.BEING_HANDLED
                )
                updated += 1
            except Exception as e:
                logger.error(f"Updating the status of flow {flow.parliament_id} failed: {e}")
        logger.info(f"{updated} submitted flow(s) moved to {ParliamentFlowStatus.BEING_HANDLED.value}")
        return updated


_status_sync_service: Optional[StatusSyncService] = None


def get_status_sync_service() -> StatusSyncService:
    """Get the global status sync service instance"""
    global _status_sync_service
    if _status_sync_service is None:
        _status_sync_service = StatusSyncService(get_record_store(), get_parliament_client())
    return _status_sync_service
