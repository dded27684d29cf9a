"""
FastAPI web server for the teleop controller.

Endpoints:
  GET  /api/state   → current controller/command snapshot (JSON)
  GET  /api/params  → all teleop parameters
  POST /api/params  → update a batch of parameters (all-or-nothing)
  WS   /ws          → real-time state push
"""
import asyncio
import json
import logging
from typing import Any, Dict

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from pydantic import BaseModel

logger = logging.getLogger(__name__)


class SetParamsReq(BaseModel):
    parameters: Dict[str, Any]


def create_app(state, params):
    app = FastAPI(title='Teleop', docs_url=None, redoc_url=None)

    # ------------------------------------------------------------------
    # REST
    # ------------------------------------------------------------------

    @app.get('/api/state')
    async def get_state():
        return json.loads(state.to_json())

    @app.get('/api/params')
    async def get_params():
        return params.as_dict()

    @app.post('/api/params')
    async def set_params(req: SetParamsReq):
        result = params.set_parameters(req.parameters)
        return {'successful': result.successful, 'reason': result.reason}

    # ------------------------------------------------------------------
    # WebSocket
    # ------------------------------------------------------------------

    @app.websocket('/ws')
    async def ws_endpoint(ws: WebSocket):
        await ws.accept()
        queue: asyncio.Queue = asyncio.Queue(maxsize=20)
        state.add_subscriber(queue)
        logger.info(f'WebSocket client connected: {ws.client}')

        try:
            # Immediately push current state
            await ws.send_text(state.to_json())

            while True:
                try:
                    data = await asyncio.wait_for(queue.get(), timeout=5.0)
                    await ws.send_text(data)
                except asyncio.TimeoutError:
                    # Keepalive: push current state
                    await ws.send_text(state.to_json())
        except WebSocketDisconnect:
            pass
        finally:
            state.remove_subscriber(queue)
            logger.info(f'WebSocket client disconnected: {ws.client}')

    return app
