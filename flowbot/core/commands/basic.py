# flowbot/core/commands/basic.py
"""
Basic commands available to everyone.
"""
from __future__ import annotations

from datetime import datetime

from flowbot.core.commands.context import CoreDeps
from flowbot.core.engine.domain import CommandParams
from flowbot.core.engine.ports import CommandHandler
from flowbot.core.texts import get_text

_WEEKDAYS = (
    "segunda-feira", "terça-feira", "quarta-feira", "quinta-feira",
    "sexta-feira", "sábado", "domingo",
)
_MONTHS = (
    "janeiro", "fevereiro", "março", "abril", "maio", "junho",
    "julho", "agosto", "setembro", "outubro", "novembro", "dezembro",
)


def format_long_date(moment: datetime) -> str:
    """17/10/2026 -> 'sábado, 17 de outubro de 2026'"""
    return (
        f"{_WEEKDAYS[moment.weekday()]}, {moment.day} de "
        f"{_MONTHS[moment.month - 1]} de {moment.year}"
    )


class BasicCommands:
    def __init__(self, deps: CoreDeps) -> None:
        self.deps = deps

    def commands(self) -> dict[str, CommandHandler]:
        return {
            "ping": self.ping,
            "oi": self.greet,
            "ola": self.greet,
            "olá": self.greet,
            "hora": self.time,
            "data": self.date,
            "echo": self.echo,
            "ajuda": self.help,
        }

    async def ping(self, params: CommandParams) -> None:
        await params.reply(get_text("pong"))

    async def greet(self, params: CommandParams) -> None:
        await params.reply(get_text("greeting", bot_name=self.deps.bot_name))

    async def time(self, params: CommandParams) -> None:
        await params.reply(get_text("current_time", time=datetime.now().strftime("%H:%M:%S")))

    async def date(self, params: CommandParams) -> None:
        await params.reply(get_text("current_date", date=format_long_date(datetime.now())))

    async def echo(self, params: CommandParams) -> None:
        if not params.args:
            await params.reply(get_text("echo_missing"))
            return
        await params.reply(" ".join(params.args))

    async def help(self, params: CommandParams) -> None:
        p = self.deps.prefix
        lines = [
            f"🤖 *{self.deps.bot_name} - Comandos disponíveis* 🤖",
            "",
            "*Comandos Básicos:*",
            f"{p}ping - Testar se o bot está online",
            f"{p}oi - Saudação",
            f"{p}hora - Mostrar a hora atual",
            f"{p}data - Mostrar a data atual",
            f"{p}echo <texto> - Repetir um texto",
            f"{p}ajuda - Mostrar esta mensagem de ajuda",
            "",
            "*Comandos Administrativos:*",
            f"{p}status - Ver estatísticas do bot",
            f"{p}plugins - Listar plugins carregados",
            f"{p}estados - Gerenciar estados de usuários",
            f"{p}ajudaadmin - Ver ajuda administrativa",
        ]

        plugin_commands = sorted(
            str(entry.name) for entry in self.deps.registry.commands()
            if not entry.is_step and entry.owner != "core"
        )
        if plugin_commands:
            lines += ["", "*Comandos de Plugins:*"]
            lines += [f"{p}{name}" for name in plugin_commands]

        plugin_count = len(self.deps.plugins)
        if plugin_count:
            lines += [
                "",
                "*Plugins:*",
                f"Há {plugin_count} plugin(s) carregado(s).",
                f"Use {p}plugins para ver detalhes.",
            ]

        await params.reply("\n".join(lines))
