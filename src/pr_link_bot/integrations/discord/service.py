from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
from typing import Any, Optional

from ...core.config import BotConfig
from ...core.logging_utils import log_event
from ...core.state import BotStateStore
from ..github.client import GitHubClient
from ..github.errors import GitHubError
from ..github.links import PR_REPO_NAME, PR_REPO_OWNER, detect_pull_request_number
from .commands import SetCommandHandler, parse_set_command
from .errors import DiscordAPIError
from .gateway import DiscordGatewayClient
from .messaging import reply_with
from .models import InboundMessage, parse_message_create
from .rendering import format_lookup_failure, format_pr_summary
from .rest import DiscordRestClient

SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class PrLinkBotService:
    def __init__(
        self,
        *,
        store: BotStateStore,
        rest_client: DiscordRestClient,
        github_client: GitHubClient,
        gateway_client: DiscordGatewayClient,
        logger: logging.Logger,
    ) -> None:
        self._store = store
        self._rest = rest_client
        self._github = github_client
        self._gateway = gateway_client
        self._logger = logger
        self._commands = SetCommandHandler(
            rest=rest_client, store=store, logger=logger
        )
        self._shutdown_event = asyncio.Event()
        self._tasks: set[asyncio.Task[None]] = set()

    def request_shutdown(self) -> None:
        self._shutdown_event.set()

    async def run_forever(self) -> None:
        """Load state, serve gateway events until shutdown, then save state.

        State errors at either end propagate to the caller. Event tasks that
        are still running at shutdown are left alone.
        """

        data = await asyncio.to_thread(self._store.load)
        log_event(
            self._logger,
            logging.INFO,
            "discord.bot.starting",
            state_file=str(self._store.path),
            pr_channel=data.pr_channel,
        )
        installed = self._install_signal_handlers()
        gateway_task = asyncio.create_task(self._gateway.run(self._on_dispatch))
        shutdown_task = asyncio.create_task(self._shutdown_event.wait())
        try:
            await asyncio.wait(
                {gateway_task, shutdown_task}, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            self._remove_signal_handlers(installed)
            shutdown_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await shutdown_task
            try:
                await asyncio.to_thread(self._store.save)
                log_event(
                    self._logger,
                    logging.INFO,
                    "discord.bot.state_saved",
                    state_file=str(self._store.path),
                )
            finally:
                await self._gateway.stop()
                await gateway_task
                log_event(
                    self._logger,
                    logging.INFO,
                    "discord.bot.stopped",
                    pending_tasks=len(self._tasks),
                )

    def _install_signal_handlers(self) -> list[signal.Signals]:
        loop = asyncio.get_running_loop()
        installed: list[signal.Signals] = []
        for sig in SHUTDOWN_SIGNALS:
            # Not available on every platform or outside the main thread.
            with contextlib.suppress(NotImplementedError, RuntimeError, ValueError):
                loop.add_signal_handler(sig, self.request_shutdown)
                installed.append(sig)
        return installed

    def _remove_signal_handlers(self, installed: list[signal.Signals]) -> None:
        loop = asyncio.get_running_loop()
        for sig in installed:
            loop.remove_signal_handler(sig)

    async def _on_dispatch(self, event_type: str, payload: dict[str, Any]) -> None:
        if event_type != "MESSAGE_CREATE":
            return
        message = parse_message_create(payload)
        if message is None:
            return
        task = asyncio.create_task(self.handle_message(message))
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: asyncio.Task[None]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            log_event(
                self._logger,
                logging.ERROR,
                "discord.message.unhandled_error",
                exc=exc,
            )

    async def handle_message(self, message: InboundMessage) -> None:
        pr_channel = self._store.get().pr_channel
        if pr_channel is not None and pr_channel == message.channel_id:
            pr_number = detect_pull_request_number(message.content)
            if pr_number is not None:
                await self._handle_pr_link(message, pr_number)

        # Not exclusive with the PR branch above.
        subcommand = parse_set_command(message.content)
        if subcommand is not None:
            await self._commands.handle(message, subcommand)

    async def _handle_pr_link(self, message: InboundMessage, pr_number: int) -> None:
        log_event(
            self._logger,
            logging.INFO,
            "discord.pr_link.received",
            pr_number=pr_number,
            user_id=message.author_id,
            channel_id=message.channel_id,
        )
        try:
            pull = await self._github.get_pull_request(
                PR_REPO_OWNER, PR_REPO_NAME, pr_number
            )
        except GitHubError as exc:
            log_event(
                self._logger,
                logging.ERROR,
                "discord.pr_link.lookup_failed",
                pr_number=pr_number,
                exc=exc,
            )
            await reply_with(
                self._rest, message, format_lookup_failure(exc), logger=self._logger
            )
            return

        content = format_pr_summary(
            author_id=message.author_id, title=pull.title, url=message.content
        )
        try:
            await self._rest.create_channel_message(
                channel_id=message.channel_id,
                payload={
                    "content": content,
                    "allowed_mentions": {"parse": [], "users": [message.author_id]},
                },
            )
        except DiscordAPIError as exc:
            log_event(
                self._logger,
                logging.ERROR,
                "discord.pr_link.send_failed",
                channel_id=message.channel_id,
                exc=exc,
            )
            return

        try:
            await self._rest.delete_channel_message(
                channel_id=message.channel_id, message_id=message.message_id
            )
        except DiscordAPIError as exc:
            log_event(
                self._logger,
                logging.ERROR,
                "discord.pr_link.delete_failed",
                channel_id=message.channel_id,
                message_id=message.message_id,
                exc=exc,
            )


async def run_pr_link_bot(
    config: BotConfig,
    *,
    logger: logging.Logger,
    gateway_url: Optional[str] = None,
) -> None:
    store = BotStateStore(config.state_file)
    async with GitHubClient(
        token=config.github.token,
        base_url=config.github.api_base_url,
        timeout_seconds=config.github.timeout_seconds,
    ) as github, DiscordRestClient(bot_token=config.discord.bot_token) as rest:
        gateway = DiscordGatewayClient(
            bot_token=config.discord.bot_token,
            intents=config.discord.intents,
            logger=logger,
            gateway_url=gateway_url,
        )
        service = PrLinkBotService(
            store=store,
            rest_client=rest,
            github_client=github,
            gateway_client=gateway,
            logger=logger,
        )
        await service.run_forever()
