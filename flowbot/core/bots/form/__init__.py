# flowbot/core/bots/form/__init__.py
"""
Form plugin - multi-step data collection flow.

    !form -> name -> email -> age -> confirm

``cancelar`` (or ``<prefix>cancelar``) leaves the form at any step. Other
prefixed text inside the flow gets a reminder instead of running a command.
"""
from __future__ import annotations

from flowbot.core.engine.domain import CommandParams
from flowbot.core.engine.flow import FlowContext
from flowbot.core.plugins import BasePlugin
from flowbot.core.texts import get_text
from flowbot.infra.logging_config import get_logger, mask_user_id

logger = get_logger(__name__)

CANCEL_WORD = "cancelar"
CONFIRM_WORDS = {"confirmar", "sim", "ok"}
DECLINE_WORDS = {"não", "nao"}

MIN_NAME_LENGTH = 3
MIN_AGE = 1
MAX_AGE = 120


def cancel_words(prefix: str) -> set[str]:
    return {CANCEL_WORD, f"{prefix}{CANCEL_WORD}"}


def is_prefixed(text: str, prefix: str) -> bool:
    return bool(prefix) and text.startswith(prefix)


def is_valid_email(value: str) -> bool:
    return "@" in value and "." in value


def parse_age(value: str) -> int | None:
    try:
        age = int(value)
    except ValueError:
        return None
    return age if MIN_AGE <= age <= MAX_AGE else None


class FormPlugin(BasePlugin):
    name = "form"
    description = "Plugin de formulário para coleta de informações"
    version = "1.0.0"

    async def on_initialize(self) -> None:
        self.register_command("form", self.start_form)
        self.register_step("name", self.on_name)
        self.register_step("email", self.on_email)
        self.register_step("age", self.on_age)
        self.register_step("confirm", self.on_confirm)

    async def start_form(self, params: CommandParams, flow: FlowContext) -> None:
        flow.create_state("name")
        await params.reply(get_text("form_start"))

    async def _intercept(self, params: CommandParams, flow: FlowContext, field: str) -> bool:
        """Handle cancel and stray commands. Returns True if the message was consumed."""
        text = params.text.strip()
        if text.lower() in cancel_words(params.prefix):
            flow.clear_state()
            await params.reply(get_text("form_cancelled"))
            return True
        if is_prefixed(text, params.prefix):
            await params.reply(get_text("form_in_progress", field=field, prefix=params.prefix))
            return True
        return False

    async def on_name(self, params: CommandParams, flow: FlowContext) -> None:
        if await self._intercept(params, flow, "seu nome"):
            return

        name = params.text.strip()
        if len(name) < MIN_NAME_LENGTH:
            await params.reply(get_text("form_invalid_name"))
            return

        flow.update_state("email", {"name": name})
        await params.reply(get_text("form_ask_email", name=name))

    async def on_email(self, params: CommandParams, flow: FlowContext) -> None:
        if await self._intercept(params, flow, "seu email"):
            return

        email = params.text.strip()
        if not is_valid_email(email):
            await params.reply(get_text("form_invalid_email"))
            return

        flow.update_state("age", {"email": email})
        await params.reply(get_text("form_ask_age"))

    async def on_age(self, params: CommandParams, flow: FlowContext) -> None:
        if await self._intercept(params, flow, "sua idade"):
            return

        age = parse_age(params.text.strip())
        if age is None:
            await params.reply(get_text("form_invalid_age"))
            return

        flow.update_state("confirm", {"age": age})
        data = flow.payload
        await params.reply(get_text(
            "form_confirm",
            name=data.get("name"),
            email=data.get("email"),
            age=age,
        ))

    async def on_confirm(self, params: CommandParams, flow: FlowContext) -> None:
        answer = params.text.strip().lower()
        decline = DECLINE_WORDS | cancel_words(params.prefix)

        if is_prefixed(answer, params.prefix) and answer not in decline:
            await params.reply(get_text("form_in_progress_confirm"))
            return

        if answer in CONFIRM_WORDS:
            logger.info(f"Form completed for user={mask_user_id(params.sender_id)}: fields={sorted(flow.payload)}")
            flow.clear_state()
            await params.reply(get_text("form_done"))
        elif answer in decline:
            flow.clear_state()
            await params.reply(get_text("form_cancelled"))
        else:
            await params.reply(get_text("form_invalid_confirm"))

    async def on_shutdown(self) -> None:
        logger.info("Form plugin shutting down")
        await super().on_shutdown()


Plugin = FormPlugin
