# flowbot/core/bots/interactive/__init__.py
"""
Interactive plugin - buttons, lists, polls and reactions.

``!menu`` opens a small flow whose step handler consumes the button
selection, showing how plugins wire interactive replies into a flow.
"""
from __future__ import annotations

import random

from flowbot.core.content import (
    REACTION_EMOJIS,
    Button,
    ListRow,
    ListSection,
    buttons_content,
    list_content,
    poll_content,
    reaction_content,
)
from flowbot.core.engine.domain import CommandParams
from flowbot.core.engine.flow import FlowContext
from flowbot.core.plugins import BasePlugin
from flowbot.core.texts import get_text
from flowbot.infra.logging_config import get_logger, mask_user_id

logger = get_logger(__name__)

DEMO_BUTTONS = [
    Button("option1", "Opção 1"),
    Button("option2", "Opção 2"),
    Button("option3", "Opção 3"),
]

DEMO_SECTIONS = [
    ListSection("Categoria 1", [
        ListRow("item1", "Item 1", "Descrição do item 1"),
        ListRow("item2", "Item 2", "Descrição do item 2"),
    ]),
    ListSection("Categoria 2", [
        ListRow("item3", "Item 3", "Descrição do item 3"),
        ListRow("item4", "Item 4", "Descrição do item 4"),
    ]),
]

POLL_OPTIONS = ["Vermelho", "Azul", "Verde", "Amarelo", "Roxo"]

MENU_OPTIONS = {
    "menu_news": "Novidades",
    "menu_support": "Suporte",
    "menu_about": "Sobre",
}
MENU_STEP = "choose"


class InteractivePlugin(BasePlugin):
    name = "interactive"
    description = "Plugin para enviar mensagens interativas (botões, listas, enquetes)"
    version = "1.0.0"

    async def on_initialize(self) -> None:
        self.register_command("botoes", self.buttons)
        self.register_command("lista", self.list)
        self.register_command("enquete", self.poll)
        self.register_command("reacao", self.reaction)
        self.register_command("menu", self.open_menu)
        self.register_step(MENU_STEP, self.on_menu_choice)

    async def buttons(self, params: CommandParams) -> None:
        if not params.args:
            await params.reply(get_text("buttons_missing", prefix=params.prefix))
            return
        text = " ".join(params.args)
        await params.reply(buttons_content(text, DEMO_BUTTONS, get_text("buttons_footer")))
        logger.debug(f"Buttons sent to user={mask_user_id(params.sender_id)}")

    async def list(self, params: CommandParams) -> None:
        if not params.args:
            await params.reply(get_text("list_missing", prefix=params.prefix))
            return
        await params.reply(list_content(
            get_text("list_text"),
            get_text("list_button"),
            DEMO_SECTIONS,
            title=" ".join(params.args),
            footer="Escolha sabiamente",
        ))

    async def poll(self, params: CommandParams) -> None:
        if not params.args:
            await params.reply(get_text("poll_missing", prefix=params.prefix))
            return
        await params.reply(poll_content(" ".join(params.args), POLL_OPTIONS))

    async def reaction(self, params: CommandParams) -> None:
        target = params.message.quoted_message_id
        if not target:
            await params.reply(get_text("reaction_missing", prefix=params.prefix))
            return
        emoji = random.choice(list(REACTION_EMOJIS.values()))
        await params.reply(reaction_content(emoji, target))

    # ------------------------------------------------------------------
    # Menu flow
    # ------------------------------------------------------------------

    async def open_menu(self, params: CommandParams, flow: FlowContext) -> None:
        if not flow.create_state(MENU_STEP):
            # Another plugin's flow is active for this user
            return
        buttons = [Button(option_id, label) for option_id, label in MENU_OPTIONS.items()]
        await params.reply(buttons_content(get_text("menu_prompt"), buttons))

    async def on_menu_choice(self, params: CommandParams, flow: FlowContext) -> None:
        choice = params.message.selection_id
        if choice in MENU_OPTIONS:
            flow.clear_state()
            await params.reply(get_text("menu_choice", choice=MENU_OPTIONS[choice]))
            return

        if params.text.strip().lower() in {"cancelar", f"{params.prefix}cancelar"}:
            flow.clear_state()
            await params.reply(get_text("menu_cancelled"))
            return

        await params.reply(get_text("menu_invalid"))


plugin = InteractivePlugin()
