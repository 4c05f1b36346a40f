"""
Parliament connectivity and manual resync API routes
"""

import logging
from fastapi import APIRouter, Depends, Response

from models.enums import ParliamentFlowStatus
from services.parliament_client import ParliamentClient, get_parliament_client
from services.reconciliation_service import ReconciliationService, get_reconciliation_service
from services.status_sync_service import StatusSyncService, get_status_sync_service
from utils.errors import AuthenticationFailure, TransientIOFailure

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/verify-credentials")
async def verify_credentials(client: ParliamentClient = Depends(get_parliament_client)):
    """Check that an access token can be retrieved and the parliament API is reachable"""
    try:
        await client.token_cache.get_token()
    except AuthenticationFailure:
        return {"message": "Credentials invalid! Access token could not be retrieved."}

    try:
        reachable = await client.ping()
    except TransientIOFailure as e:
        return {"error": f"Error while pinging the parliament API: {e}"}
    if not reachable:
        return {"error": "The parliament API did not answer the ping"}
    return {"message": "Credentials valid. Access token was successfully retrieved and service is reachable."}


@router.post("/debug/resync-error-flows", status_code=204)
async def resync_error_flows(status_sync: StatusSyncService = Depends(get_status_sync_service)):
    await status_sync.sync_flows_by_status([ParliamentFlowStatus.ERROR])
    return Response(status_code=204)


@router.post("/debug/resync-submitted-flows", status_code=204)
async def resync_submitted_flows(status_sync: StatusSyncService = Depends(get_status_sync_service)):
    await status_sync.sync_submitted_flows()
    return Response(status_code=204)


@router.post("/debug/resync-incoming-flows", status_code=204)
async def resync_incoming_flows(reconciliation: ReconciliationService = Depends(get_reconciliation_service)):
    await reconciliation.sync_incoming_flows()
    return Response(status_code=204)
