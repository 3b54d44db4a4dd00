import asyncio

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from fuelwatch.services.events import get_event_broker

router = APIRouter()

HEARTBEAT_SECONDS = 15.0


@router.get("")
async def stream_events(request: Request, broker=Depends(get_event_broker)) -> StreamingResponse:
    async def event_stream():
        async with broker.subscribe() as queue:
            yield ": connected\n\n"
            while not await request.is_disconnected():
                try:
                    event = await asyncio.wait_for(queue.get(), timeout=HEARTBEAT_SECONDS)
                except asyncio.TimeoutError:
                    yield ": keep-alive\n\n"
                    continue
                yield event.to_sse()

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
