# flowbot/core/commands/admin.py
"""
Owner-only administrative commands.

``estados`` operates directly on the StateStore:
    listar | limpar <user> | limpartodos | salvar | info <user>
"""
from __future__ import annotations

import json
from typing import Awaitable, Callable

from flowbot.core.commands.context import CoreDeps
from flowbot.core.engine.domain import CommandParams
from flowbot.core.engine.ports import CommandHandler
from flowbot.core.texts import get_text
from flowbot.infra.logging_config import get_logger, mask_user_id

logger = get_logger(__name__)


def format_uptime(seconds: float) -> str:
    """3725 -> '1h 2m 5s'"""
    total = int(seconds)
    days, rest = divmod(total, 86400)
    hours, rest = divmod(rest, 3600)
    minutes, secs = divmod(rest, 60)

    parts = []
    if days:
        parts.append(f"{days}d")
    if hours:
        parts.append(f"{hours}h")
    if minutes:
        parts.append(f"{minutes}m")
    parts.append(f"{secs}s")
    return " ".join(parts)


def owner_only(deps: CoreDeps, handler: CommandHandler) -> CommandHandler:
    async def guarded(params: CommandParams) -> None:
        if not deps.is_owner(params.sender_id):
            logger.warning(
                f"Admin command '{params.command}' refused for user={mask_user_id(params.sender_id)}"
            )
            await params.reply(get_text("owner_only"))
            return
        await handler(params)

    guarded.__name__ = getattr(handler, "__name__", "guarded")
    return guarded


class AdminCommands:
    def __init__(self, deps: CoreDeps) -> None:
        self.deps = deps
        self._state_actions: dict[str, Callable[[CommandParams], Awaitable[None]]] = {
            "listar": self._states_list,
            "limpar": self._states_clear,
            "limpartodos": self._states_clear_all,
            "salvar": self._states_save,
            "info": self._states_info,
        }

    def commands(self) -> dict[str, CommandHandler]:
        return {
            "status": owner_only(self.deps, self.status),
            "plugins": owner_only(self.deps, self.plugins),
            "estados": owner_only(self.deps, self.states),
            "ajudaadmin": owner_only(self.deps, self.admin_help),
        }

    async def status(self, params: CommandParams) -> None:
        stats = self.deps.stats
        text = (
            "📊 *Status do Bot*\n\n"
            f"⏱️ *Tempo online:* {format_uptime(stats.uptime_seconds)}\n"
            f"📨 *Mensagens processadas:* {stats.messages_processed}\n"
            f"🔧 *Comandos executados:* {stats.commands_executed}\n"
            f"❌ *Erros:* {stats.errors}\n\n"
            f"🧩 *Plugins carregados:* {len(self.deps.plugins)}\n"
            f"📝 *Estados ativos:* {len(self.deps.store)}"
        )
        await params.reply(text)

    async def plugins(self, params: CommandParams) -> None:
        loaded = self.deps.plugins.all()
        if not loaded:
            await params.reply(get_text("no_plugins"))
            return

        lines = ["🧩 *Plugins Carregados*", ""]
        for plugin in loaded:
            marker = "" if self.deps.plugins.is_healthy(plugin.name) else " ⚠️"
            lines.append(f"• *{plugin.name}* v{plugin.version}{marker}")
            lines.append(f"  {plugin.description}")
            lines.append("")
        await params.reply("\n".join(lines).rstrip())

    async def admin_help(self, params: CommandParams) -> None:
        p = self.deps.prefix
        await params.reply(
            "🔧 *Comandos Administrativos*\n\n"
            f"• *{p}status* - Mostra estatísticas do bot\n"
            f"• *{p}plugins* - Lista plugins carregados\n"
            f"• *{p}estados* - Gerencia estados de usuários"
        )

    # ------------------------------------------------------------------
    # estados
    # ------------------------------------------------------------------

    async def states(self, params: CommandParams) -> None:
        if not params.args:
            await params.reply(get_text("states_help", prefix=self.deps.prefix))
            return

        sub = params.args[0].lower()
        action = self._state_actions.get(sub)
        if action is None:
            await params.reply(get_text("states_unknown_sub", sub=sub, prefix=self.deps.prefix))
            return
        await action(params)

    async def _states_list(self, params: CommandParams) -> None:
        store = self.deps.store
        users = store.list_users()
        if not users:
            await params.reply(get_text("states_empty"))
            return

        lines = [f"📝 *Estados Ativos ({len(users)})*", ""]
        for user_id in users:
            state = store.get(user_id)
            if state is not None:
                lines.append(f"• *{user_id}*: {state.owner_plugin} ({state.current_step})")
        await params.reply("\n".join(lines))

    async def _states_clear(self, params: CommandParams) -> None:
        if len(params.args) < 2:
            await params.reply(get_text("states_user_required"))
            return

        user_id = params.args[1]
        if self.deps.store.clear(user_id):
            logger.info(f"State of user={mask_user_id(user_id)} cleared by owner")
            await params.reply(get_text("state_cleared", user=user_id))
        else:
            await params.reply(get_text("state_missing", user=user_id))

    async def _states_clear_all(self, params: CommandParams) -> None:
        count = self.deps.store.clear_all()
        await params.reply(get_text("states_cleared_all", count=count))

    async def _states_save(self, params: CommandParams) -> None:
        if self.deps.store.persist():
            await params.reply(get_text("states_saved"))
        else:
            await params.reply(get_text("states_save_failed"))

    async def _states_info(self, params: CommandParams) -> None:
        if len(params.args) < 2:
            await params.reply(get_text("states_user_required"))
            return

        user_id = params.args[1]
        state = self.deps.store.get(user_id)
        if state is None:
            await params.reply(get_text("state_missing", user=user_id))
            return

        payload = json.dumps(state.payload, ensure_ascii=False, indent=2)
        await params.reply(
            "📝 *Informações do Estado*\n\n"
            f"• *Usuário:* {user_id}\n"
            f"• *Plugin:* {state.owner_plugin}\n"
            f"• *Estado:* {state.current_step}\n"
            f"• *Criado em:* {state.created_at:%Y-%m-%d %H:%M:%S} UTC\n"
            f"• *Atualizado em:* {state.last_activity_at:%Y-%m-%d %H:%M:%S} UTC\n\n"
            f"• *Dados:*\n{payload}"
        )
