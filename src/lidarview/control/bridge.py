from __future__ import annotations

import asyncio
import logging
import uuid

from lidarview.control.base import PointCloudControl, PointCloudLoadError
from lidarview.models import ControlCommand, ControlState, DisplayOptions, PointCloudInfo


logger = logging.getLogger("lidarview.control.bridge")

CommandQueue = asyncio.Queue[ControlCommand | None]


class UnknownLoadRequestError(KeyError):
    pass


class CommandStreamClosedError(RuntimeError):
    """The command stream was taken over by a newer consumer or the control stopped."""


class BridgePointCloudControl(PointCloudControl):
    """Delegates loads and unloads to the control running in the browser.

    Commands are queued for the browser, which consumes them over SSE and
    reports back load outcomes, readiness and its state over HTTP. Only the
    most recent consumer (the last page that connected) receives commands.
    A ready report from a reloaded page drops everything queued or pending
    for the previous page before the reset callbacks run.
    """

    def __init__(self, *, options: DisplayOptions | None = None):
        super().__init__(options=options)
        self._commands: CommandQueue = asyncio.Queue()
        self._pending: dict[str, asyncio.Future[PointCloudInfo]] = {}

    @property
    def pending_loads(self) -> list[str]:
        return list(self._pending)

    async def stop(self) -> None:
        self._discard_pending()
        self._commands.put_nowait(None)
        self._commands = asyncio.Queue()
        await super().stop()

    def mark_ready(self) -> None:
        if self.is_ready:
            self._discard_pending()
        super().mark_ready()

    async def load_point_cloud(self, source: str) -> PointCloudInfo:
        request_id = uuid.uuid4().hex
        future: asyncio.Future[PointCloudInfo] = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future
        self._commands.put_nowait(
            ControlCommand(request_id=request_id, action="load", source=source)
        )
        try:
            return await future
        finally:
            self._pending.pop(request_id, None)

    def unload_point_cloud(self, resource_id: str) -> None:
        self._commands.put_nowait(
            ControlCommand(request_id=uuid.uuid4().hex, action="unload", resource_id=resource_id)
        )

    def claim_commands(self) -> CommandQueue:
        """Hand the command stream to a new consumer.

        Commands nobody read yet move over to the new stream; the previous
        consumer is woken up and gets ``CommandStreamClosedError``.
        """
        previous, self._commands = self._commands, asyncio.Queue()
        while not previous.empty():
            command = previous.get_nowait()
            if command is not None:
                self._commands.put_nowait(command)
        previous.put_nowait(None)
        return self._commands

    async def next_command(
        self,
        timeout: float | None = None,
        *,
        stream: CommandQueue | None = None,
    ) -> ControlCommand | None:
        """Wait for the next command; ``None`` when ``timeout`` elapsed first."""
        queue = stream if stream is not None else self._commands
        try:
            command = await asyncio.wait_for(queue.get(), timeout=timeout)
        except asyncio.TimeoutError:
            return None
        if command is None:
            raise CommandStreamClosedError("command stream superseded")
        return command

    def resolve_load(self, request_id: str, resource_id: str) -> None:
        future = self._pending_future(request_id)
        future.set_result(PointCloudInfo(id=resource_id))

    def reject_load(self, request_id: str, message: str) -> None:
        future = self._pending_future(request_id)
        future.set_exception(PointCloudLoadError(message))

    def report_state(self, state: ControlState) -> None:
        self._set_state(state)

    def _discard_pending(self) -> None:
        dropped = 0
        while not self._commands.empty():
            if self._commands.get_nowait() is not None:
                dropped += 1
        for future in self._pending.values():
            if not future.done():
                future.cancel()
        if dropped or self._pending:
            logger.info(
                "bridge_discarded commands=%d pending_loads=%d",
                dropped,
                len(self._pending),
            )
        self._pending.clear()

    def _pending_future(self, request_id: str) -> asyncio.Future[PointCloudInfo]:
        future = self._pending.get(request_id)
        if future is None or future.done():
            raise UnknownLoadRequestError(request_id)
        return future
