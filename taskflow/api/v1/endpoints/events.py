from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect, status

from taskflow.api.deps import SessionDep
from taskflow.services import organizations as organizations_service
from taskflow.services.realtime import manager

router = APIRouter()


@router.websocket("/updates")
async def websocket_updates(
    websocket: WebSocket,
    session: SessionDep,
    user_id: int = Query(...),
    organization_id: int = Query(...),
):
    membership = await organizations_service.get_membership(
        session,
        organization_id=organization_id,
        user_id=user_id,
    )
    if membership is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await manager.connect(websocket, organization_id)
    try:
        while True:
            # Keep the connection alive by awaiting incoming messages
            await websocket.receive_text()
    except WebSocketDisconnect:
        await manager.disconnect(websocket, organization_id)
    except Exception:
        await manager.disconnect(websocket, organization_id)
        await websocket.close(code=status.WS_1011_INTERNAL_ERROR)
