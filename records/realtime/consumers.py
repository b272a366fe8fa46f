import json
from urllib.parse import parse_qs

from channels.db import database_sync_to_async
from channels.generic.websocket import AsyncWebsocketConsumer

from records.realtime.feed import REFRESH_GROUP, current_sequences, group_name, parse_tables


async def _ws_error(ws, code: int, message: str, *, close: bool = False):
    """
    Uniform error frame.
    4xxx for client errors, 5xxx for server errors.
    """
    payload = {"type": "error", "code": code, "message": message}
    try:
        await ws.send(json.dumps(payload))
    finally:
        if close:
            await ws.close(code=code)


def _query_tables(scope):
    qs = parse_qs((scope.get("query_string") or b"").decode())
    values = qs.get("tables")
    return values[0] if values else None


class ChangeFeedConsumer(AsyncWebsocketConsumer):
    """Streams row-level change events for the subscribed tables.

    Connect to ``ws/changes/?tables=patients,lab_reports`` (``*`` or no
    parameter subscribes to every table).  Clients may later send
    ``{"type": "subscribe"|"unsubscribe", "tables": [...]}``.
    """

    async def connect(self):
        self.tables = set()
        self.listening = False
        user = self.scope.get("user")
        if not (user and user.is_authenticated):
            await self.close(code=4003)
            return
        try:
            tables = parse_tables(_query_tables(self.scope))
        except ValueError:
            await self.close(code=4004)
            return
        await self.accept()
        await self.channel_layer.group_add(REFRESH_GROUP, self.channel_name)
        self.listening = True
        await self._subscribe(tables)
        seq = await database_sync_to_async(current_sequences)(tables)
        await self.send(json.dumps({"type": "welcome", "tables": tables, "seq": seq}))

    async def disconnect(self, close_code):
        if getattr(self, "listening", False):
            await self.channel_layer.group_discard(REFRESH_GROUP, self.channel_name)
            self.listening = False
        for table in list(getattr(self, "tables", ())):
            await self.channel_layer.group_discard(group_name(table), self.channel_name)
        self.tables = set()

    async def _subscribe(self, tables):
        for table in tables:
            if table not in self.tables:
                await self.channel_layer.group_add(group_name(table), self.channel_name)
                self.tables.add(table)

    async def _unsubscribe(self, tables):
        for table in tables:
            if table in self.tables:
                await self.channel_layer.group_discard(group_name(table), self.channel_name)
                self.tables.discard(table)

    async def receive(self, text_data=None, bytes_data=None):
        if not text_data:
            return
        try:
            data = json.loads(text_data)
        except ValueError:
            await _ws_error(self, 4000, "invalid_json")
            return
        if not isinstance(data, dict):
            await _ws_error(self, 4001, "invalid_payload")
            return

        kind = data.get("type")
        if kind not in ("subscribe", "unsubscribe"):
            await _ws_error(self, 4002, "unsupported_type")
            return
        try:
            tables = parse_tables(data.get("tables"))
        except ValueError as exc:
            await _ws_error(self, 4004, str(exc))
            return

        if kind == "subscribe":
            await self._subscribe(tables)
            seq = await database_sync_to_async(current_sequences)(tables)
            await self.send(json.dumps({"type": "subscribed", "tables": sorted(self.tables), "seq": seq}))
        else:
            await self._unsubscribe(tables)
            await self.send(json.dumps({"type": "unsubscribed", "tables": sorted(self.tables)}))

    async def records_change(self, event):
        """
        Handler for group_send events of the form
            {"type": "records.change", "table", "event", "id", "seq", "row", "ts"}
        """
        if event.get("table") not in self.tables:
            return
        payload = {k: v for k, v in event.items() if k != "type"}
        await self.send(json.dumps({"type": "change", **payload}))

    async def broadcast_refresh(self, event):
        """Cache warm-up notice from ``manage.py refresh_caches``; clients refetch."""
        await self.send(json.dumps({"type": "refresh", "ts": event.get("ts"), "keys": event.get("keys", [])}))
