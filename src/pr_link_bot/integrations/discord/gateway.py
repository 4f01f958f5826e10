from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import math
import platform
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

import websockets
from websockets.exceptions import ConnectionClosed

from .constants import DISCORD_GATEWAY_URL
from .errors import DiscordAPIError, DiscordPermanentError
from .rest import DiscordRestClient

# Authentication failed, invalid shard, sharding required, invalid API
# version, invalid intents, disallowed intents.
FATAL_GATEWAY_CLOSE_CODES = {4004, 4010, 4011, 4012, 4013, 4014}


@dataclass(frozen=True)
class GatewayFrame:
    op: int
    d: Any = None
    s: Optional[int] = None
    t: Optional[str] = None
    raw: dict[str, Any] | None = None


def build_identify_payload(*, bot_token: str, intents: int) -> dict[str, Any]:
    return {
        "op": 2,
        "d": {
            "token": bot_token,
            "intents": intents,
            "properties": {
                "os": platform.system().lower() or "unknown",
                "browser": "pr-link-bot",
                "device": "pr-link-bot",
            },
        },
    }


def parse_gateway_frame(frame: str | bytes | dict[str, Any]) -> GatewayFrame:
    if isinstance(frame, bytes):
        frame = frame.decode("utf-8")
    payload = json.loads(frame) if isinstance(frame, str) else dict(frame)
    if not isinstance(payload, dict):
        raise DiscordAPIError("Discord gateway frame must be a JSON object")
    op = payload.get("op")
    if not isinstance(op, int):
        raise DiscordAPIError(f"Discord gateway frame missing numeric op: {payload!r}")
    seq = payload.get("s")
    event_type = payload.get("t")
    return GatewayFrame(
        op=op,
        d=payload.get("d"),
        s=seq if isinstance(seq, int) else None,
        t=event_type if isinstance(event_type, str) else None,
        raw=payload,
    )


def calculate_reconnect_backoff(
    attempt: int,
    *,
    base_seconds: float = 1.0,
    max_seconds: float = 30.0,
    rand_float: Callable[[], float] = random.random,
) -> float:
    normalized_attempt = max(attempt, 0)
    if max_seconds <= 0.0:
        return 0.0
    if base_seconds <= 0.0:
        return 0.0
    min_jitter = 0.8
    cap_threshold = math.ceil(math.log2(max_seconds / (base_seconds * min_jitter)))
    if normalized_attempt >= max(cap_threshold, 0):
        return max_seconds
    scaled = base_seconds * (2**normalized_attempt)
    jitter_factor = 0.8 + (0.4 * min(max(rand_float(), 0.0), 1.0))
    result: float = min(max_seconds, max(0.0, scaled * jitter_factor))
    return result


def gateway_close_code(exc: BaseException) -> int | None:
    code = getattr(exc, "code", None)
    if isinstance(code, int):
        return code
    received = getattr(exc, "rcvd", None)
    received_code = getattr(received, "code", None)
    if isinstance(received_code, int):
        return received_code
    return None


def build_resume_payload(
    *, bot_token: str, session_id: str, sequence: Optional[int]
) -> dict[str, Any]:
    return {
        "op": 6,
        "d": {"token": bot_token, "session_id": session_id, "seq": sequence},
    }


def build_heartbeat_payload(sequence: Optional[int]) -> dict[str, Any]:
    return {"op": 1, "d": sequence}


def with_gateway_query(url: str) -> str:
    if "?" in url:
        return url
    return f"{url.rstrip('/')}/?v=10&encoding=json"


@dataclass
class GatewaySession:
    session_id: str
    resume_url: Optional[str] = None
    bot_user_id: Optional[str] = None


class DiscordGatewayClient:
    """Keeps one gateway connection alive and forwards dispatch events.

    Sessions are resumed after ordinary disconnects so no events are lost;
    an invalid session or a fatal close code starts over or halts.
    """

    def __init__(
        self,
        *,
        bot_token: str,
        intents: int,
        logger: logging.Logger,
        gateway_url: str | None = None,
    ) -> None:
        self._bot_token = bot_token
        self._intents = intents
        self._logger = logger
        self._gateway_url = gateway_url
        self._sequence: Optional[int] = None
        self._session: Optional[GatewaySession] = None
        self._heartbeat_acked = True
        self._stop_event = asyncio.Event()
        self._heartbeat_task: Optional[asyncio.Task[None]] = None
        self._websocket: Any = None

    @property
    def bot_user_id(self) -> Optional[str]:
        return self._session.bot_user_id if self._session is not None else None

    async def stop(self) -> None:
        self._stop_event.set()
        await self._cancel_heartbeat()
        if self._websocket is not None:
            with contextlib.suppress(Exception):
                await self._websocket.close()

    async def run(
        self, on_dispatch: Callable[[str, dict[str, Any]], Awaitable[None]]
    ) -> None:
        reconnect_attempt = 0
        while not self._stop_event.is_set():
            ready = False
            try:
                url = await self._connect_url()
                async with websockets.connect(url) as websocket:
                    self._websocket = websocket
                    ready = await self._run_connection(websocket, on_dispatch)
            except asyncio.CancelledError:
                raise
            except DiscordPermanentError as exc:
                self._halt(f"permanent error: {exc}")
            except ConnectionClosed as exc:
                close_code = gateway_close_code(exc)
                if close_code in FATAL_GATEWAY_CLOSE_CODES:
                    self._halt(f"gateway_close_code={close_code}")
                else:
                    self._logger.info(
                        "Discord gateway socket closed (code=%s); reconnecting",
                        close_code,
                    )
            except Exception as exc:
                self._logger.warning("Discord gateway error; reconnecting: %s", exc)
            finally:
                self._websocket = None
                await self._cancel_heartbeat()

            if self._stop_event.is_set():
                break
            if ready:
                reconnect_attempt = 0
            backoff = calculate_reconnect_backoff(reconnect_attempt)
            reconnect_attempt += 1
            with contextlib.suppress(asyncio.TimeoutError):
                await asyncio.wait_for(self._stop_event.wait(), timeout=backoff)

    def _halt(self, reason: str) -> None:
        self._logger.error(
            "Discord gateway halted after fatal failure (%s). "
            "Fix the token or intents and restart the bot.",
            reason,
        )
        self._stop_event.set()

    async def _connect_url(self) -> str:
        if self._session is not None and self._session.resume_url:
            return with_gateway_query(self._session.resume_url)
        if self._gateway_url:
            return self._gateway_url
        async with DiscordRestClient(bot_token=self._bot_token) as rest:
            payload = await rest.get_gateway_bot()
        url = payload.get("url")
        if not isinstance(url, str) or not url:
            return DISCORD_GATEWAY_URL
        return with_gateway_query(url)

    async def _run_connection(
        self,
        websocket: Any,
        on_dispatch: Callable[[str, dict[str, Any]], Awaitable[None]],
    ) -> bool:
        hello = parse_gateway_frame(await websocket.recv())
        if hello.op != 10:
            raise DiscordAPIError("Discord gateway expected HELLO as first frame")
        hello_data = hello.d if isinstance(hello.d, dict) else {}
        heartbeat_ms = hello_data.get("heartbeat_interval")
        if not isinstance(heartbeat_ms, (int, float)) or heartbeat_ms <= 0:
            raise DiscordAPIError("Discord gateway HELLO missing heartbeat_interval")

        self._heartbeat_acked = True
        self._heartbeat_task = asyncio.create_task(
            self._heartbeat_loop(websocket, float(heartbeat_ms) / 1000.0)
        )
        if self._session is not None:
            await websocket.send(
                json.dumps(
                    build_resume_payload(
                        bot_token=self._bot_token,
                        session_id=self._session.session_id,
                        sequence=self._sequence,
                    )
                )
            )
        else:
            await websocket.send(
                json.dumps(
                    build_identify_payload(
                        bot_token=self._bot_token, intents=self._intents
                    )
                )
            )

        ready = False
        async for raw_message in websocket:
            frame = parse_gateway_frame(raw_message)
            if frame.s is not None:
                self._sequence = frame.s

            if frame.op == 0:
                if frame.t in ("READY", "RESUMED"):
                    ready = True
                if frame.t == "READY" and isinstance(frame.d, dict):
                    self._session = _session_from_ready(frame.d)
                    self._logger.info(
                        "Discord gateway ready as user %s",
                        self._session.bot_user_id if self._session else None,
                    )
                if frame.t and isinstance(frame.d, dict):
                    await on_dispatch(frame.t, frame.d)
                continue
            if frame.op == 1:
                await websocket.send(json.dumps(build_heartbeat_payload(self._sequence)))
                continue
            if frame.op == 11:
                self._heartbeat_acked = True
                continue
            if frame.op == 7:
                self._logger.info("Discord gateway requested reconnect")
                return ready
            if frame.op == 9:
                if frame.d is not True:
                    self._session = None
                    self._sequence = None
                self._logger.warning(
                    "Discord gateway reported invalid session (resumable=%s)",
                    frame.d is True,
                )
                return ready

        return ready

    async def _heartbeat_loop(self, websocket: Any, interval_seconds: float) -> None:
        # First beat is jittered as the gateway docs ask.
        await asyncio.sleep(interval_seconds * random.random())
        while not self._stop_event.is_set():
            if not self._heartbeat_acked:
                self._logger.warning("Discord heartbeat not acknowledged; reconnecting")
                await websocket.close(code=4000)
                return
            self._heartbeat_acked = False
            await websocket.send(json.dumps(build_heartbeat_payload(self._sequence)))
            await asyncio.sleep(interval_seconds)

    async def _cancel_heartbeat(self) -> None:
        if self._heartbeat_task is None:
            return
        task = self._heartbeat_task
        self._heartbeat_task = None
        if not task.done():
            task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        except Exception as exc:
            # The socket may already be gone; never let this abort reconnects.
            self._logger.debug("Discord heartbeat task ended with error: %s", exc)


def _session_from_ready(data: dict[str, Any]) -> Optional[GatewaySession]:
    session_id = data.get("session_id")
    if not isinstance(session_id, str) or not session_id:
        return None
    resume_url = data.get("resume_gateway_url")
    user = data.get("user")
    user_id = user.get("id") if isinstance(user, dict) else None
    return GatewaySession(
        session_id=session_id,
        resume_url=resume_url if isinstance(resume_url, str) and resume_url else None,
        bot_user_id=str(user_id) if user_id is not None else None,
    )
