# memobench/ws.py
"""
WebSocket log stream that:
1. Connects to the node's pubsub endpoint
2. Subscribes to logs mentioning the test wallet
3. Hands back parsed LogEvents one at a time
4. Unsubscribes and closes exactly once
"""
import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any

import websockets

import memobench.constants as C

log = logging.getLogger("memobench.ws")


class StreamClosed(Exception):
    """The websocket went away; no more events will arrive."""


class SubscribeError(Exception):
    """The node refused or never acknowledged logsSubscribe."""


@dataclass(frozen=True, slots=True)
class LogEvent:
    slot: int
    signature: str
    err: Any
    logs: tuple[str, ...]

    @classmethod
    def from_notification(cls, params: dict) -> "LogEvent":
        """Parse the 'params' of a logsNotification.

        {
            "result": {
                "context": {"slot": 5208469},
                "value": {"signature": "5h6x...", "err": null, "logs": ["..."]}
            },
            "subscription": 24040
        }
        """
        result = params["result"]
        value = result["value"]
        return cls(
            slot=int(result["context"]["slot"]),
            signature=value["signature"],
            err=value.get("err"),
            logs=tuple(value.get("logs") or ()),
        )


def _parse_message(raw: str | bytes, subscription_id: int) -> LogEvent | None:
    try:
        obj = json.loads(raw)
    except json.JSONDecodeError:
        log.debug("WS raw (non-JSON): %s", raw[:200])
        return None

    if not isinstance(obj, dict) or obj.get("method") != "logsNotification":
        # Unsubscribe acks, status messages, etc.
        log.debug("WS non-notification message: %s", str(obj)[:200])
        return None

    params = obj.get("params") or {}
    if params.get("subscription") != subscription_id:
        log.debug("WS notification for another subscription: %s", params.get("subscription"))
        return None

    try:
        return LogEvent.from_notification(params)
    except (KeyError, TypeError, ValueError) as e:
        log.warning("Malformed logsNotification (%s): %s", e, str(obj)[:200])
        return None


class LogSubscription:
    def __init__(self, ws, subscription_id: int):
        self._ws = ws
        self.subscription_id = subscription_id
        self._closed = False

    async def recv(self) -> LogEvent | None:
        """Next event for this subscription, or None for messages that aren't one."""
        try:
            raw = await self._ws.recv()
        except websockets.ConnectionClosed as e:
            raise StreamClosed(str(e)) from e
        return _parse_message(raw, self.subscription_id)

    async def unsubscribe(self) -> None:
        if self._closed:
            return
        self._closed = True
        msg = {"jsonrpc": "2.0", "id": 2, "method": "logsUnsubscribe", "params": [self.subscription_id]}
        try:
            await self._ws.send(json.dumps(msg))
        except websockets.ConnectionClosed:
            log.debug("WS already closed before logsUnsubscribe")
        finally:
            await self._ws.close()
        log.info("WS unsubscribed (subscription %s)", self.subscription_id)


async def subscribe_logs(
    ws_url: str,
    account: str,
    commitment: C.Commitment = C.Commitment.PROCESSED,
) -> LogSubscription:
    """
    Open a websocket and subscribe to logs mentioning ``account``.

    Parameters
    ----------
    ws_url:
        WebSocket URL (e.g., "wss://node.foo.cc")
    account:
        Base58 address whose transactions we want to see
    commitment:
        Commitment level the node should notify at
    """
    ws = await websockets.connect(ws_url, ping_interval=20, ping_timeout=20, close_timeout=1)
    log.info("WS connected: %s", ws_url)
    subscribe_msg = {
        "jsonrpc": "2.0",
        "id": 1,
        "method": "logsSubscribe",
        "params": [{"mentions": [account]}, {"commitment": str(commitment)}],
    }
    try:
        await ws.send(json.dumps(subscribe_msg))
        try:
            ack = json.loads(await asyncio.wait_for(ws.recv(), timeout=C.SUBSCRIBE_TIMEOUT))
        except asyncio.TimeoutError as e:
            raise SubscribeError("logsSubscribe ack timeout") from e
        if "error" in ack or "result" not in ack:
            raise SubscribeError(f"logsSubscribe failed: {ack}")
    except BaseException:
        await ws.close()
        raise

    log.info("WS subscription successful (subscription %s)", ack["result"])
    return LogSubscription(ws, ack["result"])
