# flowbot/core/bots/example/__init__.py
"""
Example plugin - the smallest useful plugin, kept as a template.
"""
from flowbot.core.engine.domain import CommandParams
from flowbot.core.plugins import BasePlugin
from flowbot.core.texts import get_text


class ExamplePlugin(BasePlugin):
    name = "example"
    description = "Plugin de exemplo para demonstração"
    version = "1.0.0"

    async def on_initialize(self) -> None:
        self.register_command("exemplo", self.example)
        self.register_command("eco", self.echo)

    async def example(self, params: CommandParams) -> None:
        await params.reply(get_text("example"))

    async def echo(self, params: CommandParams) -> None:
        message = " ".join(params.args)
        if not message:
            await params.reply(get_text("eco_missing"))
            return
        await params.reply(get_text("eco", message=message))


plugin = ExamplePlugin()
