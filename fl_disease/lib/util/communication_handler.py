"""
Websocket transport shared by the contributor and the artifact storage.
Messages are python lists pickled on the wire.
"""
import asyncio
import logging
import pickle
from typing import Any, Awaitable, Callable, List

import websockets


async def send(msg: List[Any], ip: str, socket: int, timeout: float = None) -> Any:
    """
    Open a connection, send one message and wait for the single reply
    """
    wsaddr = f'ws://{ip}:{socket}'
    async with websockets.connect(wsaddr, max_size=None, ping_interval=None,
                                  open_timeout=timeout) as websocket:
        await websocket.send(pickle.dumps(msg))
        if timeout is None:
            raw = await websocket.recv()
        else:
            raw = await asyncio.wait_for(websocket.recv(), timeout)
        return pickle.loads(raw)


async def send_websocket(msg: Any, websocket):
    await websocket.send(pickle.dumps(msg))


async def receive(websocket) -> Any:
    return pickle.loads(await websocket.recv())


async def serve_storage(handler: Callable[[Any], Awaitable[None]], ip: str, socket: int):
    async with websockets.serve(handler, ip, socket, max_size=None):
        logging.info(f'--- Storage server listening on {ip}:{socket} ---')
        await asyncio.Future()


def init_storage_server(handler: Callable[[Any], Awaitable[None]], ip: str, socket: int):
    asyncio.run(serve_storage(handler, ip, socket))
