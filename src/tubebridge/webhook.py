"""HTTP receiver for Jellyfin Webhook plugin notifications."""

import logging
from typing import Any, Dict, Optional

from aiohttp import web

from tubebridge.sync.events import (EventDispatcher, PlaybackProgressEvent, SyncEvent,
                                    WatchedChangedEvent)

logger = logging.getLogger(__name__)

DISPATCHER_KEY = web.AppKey("dispatcher", EventDispatcher)


def parse_webhook_payload(payload: Dict[str, Any]) -> Optional[SyncEvent]:
    """Turn a webhook notification into a sync event, None for anything else."""
    notification = payload.get('NotificationType')
    item_id = payload.get('ItemId')
    if not item_id:
        return None

    user_id = payload.get('UserId') or ''
    username = payload.get('NotificationUsername') or payload.get('Username') or ''

    if notification == 'PlaybackProgress':
        ticks = payload.get('PlaybackPositionTicks')
        return PlaybackProgressEvent(
            item_id=item_id,
            user_id=user_id,
            username=username,
            position_ticks=int(ticks) if ticks is not None else None,
        )

    if notification == 'UserDataSaved':
        # Only explicit played/unplayed toggles
        reason = payload.get('SaveReason')
        if reason and reason != 'TogglePlayed':
            return None
        return WatchedChangedEvent(
            item_id=item_id,
            user_id=user_id,
            username=username,
            played=bool(payload.get('Played', False)),
        )

    return None


async def handle_webhook(request: web.Request) -> web.Response:
    try:
        payload = await request.json()
    except ValueError:
        return web.json_response({'error': 'invalid JSON'}, status=400)
    if not isinstance(payload, dict):
        return web.json_response({'error': 'expected an object'}, status=400)

    event = parse_webhook_payload(payload)
    if event is None:
        logger.debug(f"Ignoring notification {payload.get('NotificationType')}")
        return web.Response(status=204)

    if not request.app[DISPATCHER_KEY].submit(event):
        return web.json_response({'error': 'queue full'}, status=503)
    return web.json_response({'queued': type(event).__name__}, status=202)


def create_webhook_app(dispatcher: EventDispatcher) -> web.Application:
    app = web.Application()
    app[DISPATCHER_KEY] = dispatcher
    app.router.add_post('/webhook', handle_webhook)
    return app
