# flowbot/bootstrap.py
"""
Runtime assembly.

Every long-lived object is constructed here and passed by reference; the core
holds no module-level singletons.

Startup order:
    states loaded -> plugins loaded and initialized -> commands registered
    -> state timers, outbound worker, Telegram poller started
Shutdown runs in reverse and ends with a final state snapshot.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from flowbot.config import Settings
from flowbot.core.commands import CoreDeps, core_commands
from flowbot.core.engine.domain import Content
from flowbot.core.engine.registry import CommandRegistry
from flowbot.core.engine.router import ConversationRouter
from flowbot.core.engine.state_store import StateStore
from flowbot.core.plugins.host import PluginHost
from flowbot.infra.http_client import close_all_sessions
from flowbot.infra.logging_config import get_logger, mask_user_id
from flowbot.infra.outbound_queue import OutboundQueue, SendFunc
from flowbot.transport.adapters import TelegramAdapter
from flowbot.transport.telegram_polling import TelegramPoller
from flowbot.transport.telegram_sender import TelegramSendError, TelegramTransport

logger = get_logger(__name__)


@dataclass
class Runtime:
    settings: Settings
    store: StateStore
    registry: CommandRegistry
    plugins: PluginHost
    outbound: OutboundQueue
    router: ConversationRouter
    adapter: TelegramAdapter
    transport: Optional[TelegramTransport] = None
    poller: Optional[TelegramPoller] = None


async def log_only_send(recipient_id: str, content: Content) -> None:
    """Send function used when no messaging transport is configured"""
    logger.info(f"[outbound] to={mask_user_id(recipient_id)}: {content}")


def build_runtime(config: Settings, *, send_func: SendFunc | None = None) -> Runtime:
    """
    Construct the object graph without starting anything.

    Args:
        config: Application settings
        send_func: Override for the outbound delivery function (tests, dev)
    """
    store = StateStore(
        config.state_file_path,
        max_age_hours=config.state_max_age_hours,
        save_interval_minutes=config.state_save_interval_minutes,
        sweep_interval_minutes=config.state_sweep_interval_minutes,
    )
    registry = CommandRegistry()
    plugins = PluginHost(
        enabled=config.enabled_plugin_names(),
        disabled=config.disabled_plugin_names(),
    )

    transport = None
    if config.telegram_enabled:
        transport = TelegramTransport(config.telegram_bot_token)

    if send_func is None:
        send_func = transport.deliver if transport is not None else log_only_send

    outbound = OutboundQueue(
        send_func,
        priority_delay=config.outbound_priority_delay_seconds,
        min_delay=config.outbound_min_delay_seconds,
        max_retries=config.outbound_max_retries,
        base_retry_delay=config.outbound_base_retry_delay,
    )
    router = ConversationRouter(
        store,
        registry,
        outbound,
        prefix=config.command_prefix,
        handler_timeout_seconds=config.handler_timeout_seconds,
    )
    adapter = TelegramAdapter(command_prefix=config.command_prefix)

    poller = None
    if transport is not None and config.telegram_mode == "polling":
        poller = TelegramPoller(transport, router, adapter, poll_timeout=config.telegram_poll_timeout)

    return Runtime(
        settings=config,
        store=store,
        registry=registry,
        plugins=plugins,
        outbound=outbound,
        router=router,
        adapter=adapter,
        transport=transport,
        poller=poller,
    )


async def start_runtime(runtime: Runtime, *, background: bool = True) -> None:
    """
    Load state and plugins, register commands, start background tasks.

    Args:
        background: Start the timers, the outbound worker and the poller
    """
    config = runtime.settings

    loaded = runtime.store.load()
    logger.info(f"State store ready: {loaded} state(s) restored")

    runtime.plugins.load(config.resolved_plugins_dir)
    await runtime.plugins.initialize_all(runtime.outbound)

    deps = CoreDeps(
        store=runtime.store,
        registry=runtime.registry,
        plugins=runtime.plugins,
        stats=runtime.router.stats,
        bot_name=config.bot_name,
        prefix=config.command_prefix,
        owner_id=config.owner_id,
    )
    runtime.registry.register_batch(core_commands(deps), owner="core")
    runtime.registry.register_batch(runtime.plugins.collect_commands())
    logger.info(
        f"Commands registered: {len(runtime.registry.names())} command(s), "
        f"{len(runtime.registry)} handler(s) total"
    )

    if not background:
        return

    runtime.store.start()
    runtime.outbound.start()
    if runtime.poller is not None:
        await runtime.poller.start()
    elif runtime.transport is not None and config.telegram_mode == "webhook":
        await _register_webhook(runtime.transport, config)


async def _register_webhook(transport: TelegramTransport, config: Settings) -> None:
    if not config.telegram_webhook_url:
        logger.info("TELEGRAM_WEBHOOK_URL not set, assuming the webhook is registered externally")
        return
    try:
        await transport.set_webhook(config.telegram_webhook_url, config.telegram_webhook_secret)
        logger.info(f"Telegram webhook registered: {config.telegram_webhook_url}")
    except TelegramSendError as exc:
        logger.error(f"Could not register Telegram webhook: {exc}")


async def stop_runtime(runtime: Runtime) -> None:
    """Stop background tasks, shut plugins down and persist state"""
    if runtime.poller is not None:
        await runtime.poller.stop()

    await runtime.plugins.shutdown_all()
    await runtime.store.shutdown()
    await runtime.outbound.stop()
    await close_all_sessions()
