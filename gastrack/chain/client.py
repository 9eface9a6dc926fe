"""
Chain RPC capability used by the ingestion and price components.

ChainClient is the contract the engine depends on; JsonRpcChainClient is the
concrete Ethereum JSON-RPC implementation over one WebSocket per network.
Requests and eth_subscribe streams share that socket: a reader task
dispatches responses by request id and notifications by subscription id.
"""

import asyncio
import itertools
import json
from collections.abc import AsyncIterator, Callable, Mapping, Sequence
from typing import Any, Optional, Protocol

import aiohttp
import structlog
from eth_abi import encode
from web3 import Web3

from ..data.models import BlockHeader
from ..data.parsers import (
    decode_hex_bytes,
    parse_block_header,
    parse_head_notification,
    parse_log_notification,
)
from ..errors import ChainConnectionError, FetchError, MalformedDataError

logger = structlog.get_logger(__name__)

_CLOSED = object()   # Remote side went away
_STOPPED = object()  # Local close()


class HeadSubscription(Protocol):
    """Async stream of block heights for one network."""

    def __aiter__(self) -> AsyncIterator[int]: ...

    async def close(self) -> None: ...


class LogSubscription(Protocol):
    """Async stream of raw log objects for one contract filter."""

    def __aiter__(self) -> AsyncIterator[dict[str, Any]]: ...

    async def close(self) -> None: ...


class ChainClient(Protocol):
    """Opaque chain capability: head and log streams, header fetch and contract calls."""

    async def subscribe_heads(self, network_id: str, endpoint: str) -> HeadSubscription: ...

    async def subscribe_logs(self, network_id: str, address: str, topics: Sequence[str]) -> LogSubscription: ...

    async def get_block_header(self, network_id: str, height: int) -> BlockHeader: ...

    async def call_contract(
        self,
        address: str,
        signature: str,
        args: Sequence[Any] = (),
        network_id: Optional[str] = None,
    ) -> bytes: ...

    async def close(self) -> None: ...


def function_selector(signature: str) -> bytes:
    """First four bytes of keccak256 of the canonical signature."""
    return bytes(Web3.keccak(text=signature)[:4])


def event_topic(signature: str) -> str:
    """0x-prefixed keccak256 of an event signature, as used in topics[0]."""
    return "0x" + bytes(Web3.keccak(text=signature)).hex()


def signature_arg_types(signature: str) -> list[str]:
    """Argument types of a flat signature such as "balanceOf(address)"."""
    if "(" not in signature or not signature.endswith(")"):
        raise ValueError(f"Invalid function signature: {signature!r}")
    inner = signature[signature.index("(") + 1:-1]
    return [arg.strip() for arg in inner.split(",") if arg.strip()]


def encode_call_data(signature: str, args: Sequence[Any] = ()) -> str:
    """ABI-encode a call into 0x-prefixed calldata."""
    arg_types = signature_arg_types(signature)
    if len(arg_types) != len(args):
        raise ValueError(f"{signature} expects {len(arg_types)} args, got {len(args)}")
    payload = function_selector(signature)
    if arg_types:
        payload += encode(arg_types, list(args))
    return "0x" + payload.hex()


class _RpcSocket:
    """One WebSocket JSON-RPC connection with request/response routing."""

    def __init__(self, network_id: str, endpoint: str, ws: aiohttp.ClientWebSocketResponse):
        self.network_id = network_id
        self.endpoint = endpoint
        self.ws = ws
        self.closed = False
        self._closing = False
        self._ids = itertools.count(1)
        self._pending: dict[int, asyncio.Future] = {}
        self._subscribe_queues: dict[int, asyncio.Queue] = {}
        self._subscriptions: dict[str, asyncio.Queue] = {}
        self._reader = asyncio.create_task(self._read_loop(), name=f"rpc-reader-{network_id}")

    async def request(self, method: str, params: list[Any], timeout: float,
                      subscription_queue: Optional[asyncio.Queue] = None) -> Any:
        """
        Send a request and wait for its response.

        With subscription_queue, the queue is registered under the returned
        subscription id by the reader, before any later frame is dispatched.
        """
        if self.closed:
            raise ChainConnectionError(
                f"Connection to {self.network_id} is closed",
                network_id=self.network_id,
                endpoint=self.endpoint,
            )

        request_id = next(self._ids)
        future = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future
        if subscription_queue is not None:
            self._subscribe_queues[request_id] = subscription_queue

        try:
            await self.ws.send_json({"jsonrpc": "2.0", "id": request_id, "method": method, "params": params})
            return await asyncio.wait_for(future, timeout)
        finally:
            self._pending.pop(request_id, None)
            self._subscribe_queues.pop(request_id, None)

    async def subscribe(self, params: list[Any], timeout: float) -> tuple[Any, asyncio.Queue]:
        """eth_subscribe, returning the subscription id and its notification queue."""
        queue: asyncio.Queue = asyncio.Queue()
        subscription_id = await self.request("eth_subscribe", params, timeout, subscription_queue=queue)
        return subscription_id, queue

    def register_subscription(self, subscription_id: str, queue: asyncio.Queue) -> None:
        self._subscriptions[subscription_id] = queue
        if self.closed:
            queue.put_nowait(_STOPPED if self._closing else _CLOSED)

    def drop_subscription(self, subscription_id: str) -> None:
        self._subscriptions.pop(subscription_id, None)

    async def close(self) -> None:
        self._closing = True
        if not self._reader.done():
            self._reader.cancel()
            try:
                await self._reader
            except asyncio.CancelledError:
                pass
        if not self.ws.closed:
            await self.ws.close()
        self._fail_all("connection closed locally")

    async def _read_loop(self) -> None:
        try:
            async for msg in self.ws:
                if msg.type == aiohttp.WSMsgType.TEXT:
                    try:
                        payload = json.loads(msg.data)
                    except ValueError:
                        logger.warning("Dropping non-JSON frame", network_id=self.network_id)
                        continue
                    self._dispatch(payload)
                elif msg.type in (aiohttp.WSMsgType.CLOSED, aiohttp.WSMsgType.ERROR):
                    break
        finally:
            self._fail_all("connection closed by remote")

    def _dispatch(self, payload: dict[str, Any]) -> None:
        request_id = payload.get("id")
        if request_id is not None:
            future = self._pending.get(request_id)
            if future is None or future.done():
                return
            queue = self._subscribe_queues.pop(request_id, None)
            if queue is not None and isinstance(payload.get("result"), str):
                self.register_subscription(payload["result"], queue)
            if payload.get("error"):
                error = payload["error"]
                future.set_exception(FetchError(
                    f"RPC error: {error.get('message') if isinstance(error, dict) else error}",
                    network_id=self.network_id,
                    context={"error": error},
                ))
            else:
                future.set_result(payload.get("result"))
            return

        if payload.get("method") == "eth_subscription":
            params = payload.get("params") or {}
            queue = self._subscriptions.get(params.get("subscription"))
            if queue is not None:
                queue.put_nowait(params)

    def _fail_all(self, reason: str) -> None:
        if self.closed:
            return
        self.closed = True

        for future in self._pending.values():
            if not future.done():
                future.set_exception(ChainConnectionError(
                    reason, network_id=self.network_id, endpoint=self.endpoint
                ))
        marker = _STOPPED if self._closing else _CLOSED
        for queue in self._subscriptions.values():
            queue.put_nowait(marker)


class _WsSubscription:
    """eth_subscribe stream backed by an _RpcSocket queue."""

    def __init__(
        self,
        socket: _RpcSocket,
        subscription_id: str,
        queue: asyncio.Queue,
        timeout: float,
        parse: Callable[[dict[str, Any]], Any],
        kind: str,
    ):
        self._socket = socket
        self._subscription_id = subscription_id
        self._queue = queue
        self._timeout = timeout
        self._parse = parse
        self._kind = kind
        self._closed = False

    def __aiter__(self) -> AsyncIterator[Any]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[Any]:
        while True:
            item = await self._queue.get()
            if item is _STOPPED:
                return
            if item is _CLOSED:
                raise ChainConnectionError(
                    f"{self._kind} subscription lost",
                    network_id=self._socket.network_id,
                    endpoint=self._socket.endpoint,
                )
            try:
                yield self._parse(item)
            except MalformedDataError as e:
                logger.warning(
                    "Skipping malformed notification",
                    network_id=self._socket.network_id,
                    subscription=self._kind,
                    error=str(e)
                )

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._socket.drop_subscription(self._subscription_id)
        self._queue.put_nowait(_STOPPED)

        if not self._socket.closed:
            try:
                await self._socket.request("eth_unsubscribe", [self._subscription_id], self._timeout)
            except (ChainConnectionError, FetchError, asyncio.TimeoutError) as e:
                logger.debug(
                    "Unsubscribe failed",
                    network_id=self._socket.network_id,
                    error=str(e)
                )


class JsonRpcChainClient:
    """Ethereum JSON-RPC over WebSocket, one socket per network."""

    def __init__(
        self,
        endpoints: Optional[Mapping[str, str]] = None,
        default_network: str = "ethereum",
        rpc_timeout: float = 10.0,
        connect_timeout: float = 15.0,
    ):
        self.endpoints: dict[str, str] = dict(endpoints or {})
        self.default_network = default_network
        self.rpc_timeout = rpc_timeout
        self.connect_timeout = connect_timeout
        self.logger = logger

        self._session: Optional[aiohttp.ClientSession] = None
        self._sockets: dict[str, _RpcSocket] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    async def subscribe_heads(self, network_id: str, endpoint: str) -> HeadSubscription:
        """
        Open (or reuse) the network's socket and subscribe to newHeads.

        Raises:
            ChainConnectionError: If the socket or subscription cannot be established
        """
        self.endpoints[network_id] = endpoint
        return await self._subscribe(network_id, ["newHeads"], parse_head_notification, "Head")

    async def subscribe_logs(self, network_id: str, address: str, topics: Sequence[str]) -> LogSubscription:
        """
        Subscribe to logs emitted by one contract, on the network's configured endpoint.

        Raises:
            ChainConnectionError: If the socket or subscription cannot be established
        """
        log_filter = {"address": address, "topics": list(topics)}
        return await self._subscribe(network_id, ["logs", log_filter], parse_log_notification, "Log")

    async def _subscribe(
        self,
        network_id: str,
        params: list[Any],
        parse: Callable[[dict[str, Any]], Any],
        kind: str,
    ) -> _WsSubscription:
        socket = await self._get_socket(network_id)

        try:
            subscription_id, queue = await socket.subscribe(params, self.rpc_timeout)
        except (FetchError, asyncio.TimeoutError) as e:
            raise ChainConnectionError(
                f"eth_subscribe failed: {e or 'timeout'}",
                network_id=network_id,
                endpoint=socket.endpoint,
            ) from e

        if not isinstance(subscription_id, str):
            raise ChainConnectionError(
                f"Unexpected subscription id: {subscription_id!r}",
                network_id=network_id,
                endpoint=socket.endpoint,
            )

        self.logger.info("Subscribed", network_id=network_id, kind=params[0], subscription_id=subscription_id)
        return _WsSubscription(socket, subscription_id, queue, self.rpc_timeout, parse, kind)

    async def get_block_header(self, network_id: str, height: int) -> BlockHeader:
        """
        Fetch a block header by height.

        Raises:
            FetchError: If the call fails, times out or returns no block
        """
        result = await self._request(network_id, "eth_getBlockByNumber", [hex(height), False])
        if result is None:
            raise FetchError(f"Block {height} not found", network_id=network_id,
                             operation="eth_getBlockByNumber")
        header = parse_block_header(result)
        return header

    async def call_contract(
        self,
        address: str,
        signature: str,
        args: Sequence[Any] = (),
        network_id: Optional[str] = None,
    ) -> bytes:
        """
        Execute a read-only contract call at the latest block.

        Raises:
            FetchError: If the call fails, times out or returns invalid data
        """
        network_id = network_id or self.default_network
        call = {"to": address, "data": encode_call_data(signature, args)}
        result = await self._request(network_id, "eth_call", [call, "latest"])
        return decode_hex_bytes(result)

    async def close(self) -> None:
        """Close every socket and the HTTP session. Safe to call more than once."""
        sockets, self._sockets = self._sockets, {}
        for socket in sockets.values():
            await socket.close()

        if self._session is not None:
            await self._session.close()
            self._session = None

    async def _request(self, network_id: str, method: str, params: list[Any]) -> Any:
        try:
            socket = await self._get_socket(network_id)
            return await socket.request(method, params, self.rpc_timeout)
        except asyncio.TimeoutError as e:
            raise FetchError(f"{method} timed out after {self.rpc_timeout}s",
                             network_id=network_id, operation=method) from e
        except ChainConnectionError as e:
            raise FetchError(f"{method} failed: {e}", network_id=network_id, operation=method) from e

    async def _get_socket(self, network_id: str) -> _RpcSocket:
        lock = self._locks.setdefault(network_id, asyncio.Lock())
        async with lock:
            socket = self._sockets.get(network_id)
            if socket is not None and not socket.closed:
                return socket

            endpoint = self.endpoints.get(network_id)
            if not endpoint:
                raise ChainConnectionError(f"No endpoint configured for {network_id}",
                                           network_id=network_id)

            if self._session is None:
                self._session = aiohttp.ClientSession()

            try:
                ws = await asyncio.wait_for(
                    self._session.ws_connect(endpoint, heartbeat=30),
                    self.connect_timeout,
                )
            except (aiohttp.ClientError, OSError, asyncio.TimeoutError) as e:
                raise ChainConnectionError(
                    f"WebSocket connect failed: {e or 'timeout'}",
                    network_id=network_id,
                    endpoint=endpoint,
                ) from e

            socket = _RpcSocket(network_id, endpoint, ws)
            self._sockets[network_id] = socket
            self.logger.info("WebSocket connected", network_id=network_id, endpoint=endpoint)
            return socket
