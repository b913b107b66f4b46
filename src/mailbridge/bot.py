"""Telegram binding for the command gateway.

Members run ``/email <name> <address>`` either in a private chat with the bot
or in the community's setup chat. Only members of the community chat are
served. SMTP details are sent privately; the setup chat gets an audit line.
"""

from __future__ import annotations

import logging

from telegram import Bot
from telegram import Update
from telegram.constants import ChatMemberStatus
from telegram.constants import ChatType
from telegram.constants import ParseMode
from telegram.error import BadRequest
from telegram.error import Forbidden
from telegram.error import TelegramError
from telegram.ext import Application
from telegram.ext import CommandHandler
from telegram.ext import ContextTypes

from mailbridge.config import Settings
from mailbridge.forwarder import Forwarder
from mailbridge.gateway import FORWARD_COMMAND
from mailbridge.gateway import REMOVE_COMMAND
from mailbridge.gateway import CommandGateway
from mailbridge.gateway import GatewayReply

logger = logging.getLogger(__name__)

NOT_A_MEMBER = {ChatMemberStatus.LEFT, ChatMemberStatus.BANNED}
DM_BLOCKED = "I could not message you privately. Start a chat with me first, then run the command again."


async def send_markdown(bot: Bot, chat_id: int | str, text: str) -> None:
    """Send ``text`` as Markdown, falling back to plain text when it does not parse."""
    try:
        await bot.send_message(chat_id=chat_id, text=text, parse_mode=ParseMode.MARKDOWN)
    except BadRequest as e:
        if "can't parse" not in str(e).lower():
            raise
        await bot.send_message(chat_id=chat_id, text=text)


class EmailBot:
    """Wires a :class:`CommandGateway` into a python-telegram-bot Application.

    The forwarder is started in the application's ``post_init`` hook and
    closed in ``post_shutdown``, so the cache is populated before the first
    update is processed.
    """

    def __init__(self, settings: Settings, forwarder: Forwarder, application: Application | None = None):
        self.settings = settings
        self.forwarder = forwarder
        self.gateway = CommandGateway(forwarder, smtp_server=settings.smtp_server)

        if application is None:
            application = (
                Application.builder()
                .token(settings.telegram_token)
                .post_init(self._post_init)
                .post_shutdown(self._post_shutdown)
                .build()
            )
        self.application = application
        self.application.add_handler(CommandHandler(FORWARD_COMMAND, self.handle_forward))
        self.application.add_handler(CommandHandler(REMOVE_COMMAND, self.handle_remove))

    # --- Lifecycle ---

    async def _post_init(self, application: Application) -> None:
        await self.forwarder.start()
        if self.settings.telegram_bot_name:
            try:
                await application.bot.set_my_name(self.settings.telegram_bot_name)
            except TelegramError as e:
                logger.warning(f"Could not set bot name: {e}")
        logger.info("Bot is now running. Press CTRL-C to exit.")

    async def _post_shutdown(self, application: Application) -> None:
        await self.forwarder.close()

    def run(self) -> None:
        """Poll for updates until SIGINT/SIGTERM."""
        self.application.run_polling(allowed_updates=Update.ALL_TYPES, drop_pending_updates=True)

    # --- Handlers ---

    async def _authorised(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> bool:
        user = update.effective_user
        chat = update.effective_chat
        if user is None or chat is None or user.is_bot:
            return False

        if chat.type != ChatType.PRIVATE and chat.id != self.settings.setup_chat_id:
            return False

        try:
            member = await context.bot.get_chat_member(self.settings.community_chat_id, user.id)
        except TelegramError as e:
            logger.info(f"Membership lookup for {user.id} failed: {e}")
            return False
        return member.status not in NOT_A_MEMBER

    async def handle_forward(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        if not await self._authorised(update, context):
            return
        identifier = str(update.effective_user.id)
        reply = await self.gateway.handle_forward(context.args or [], identifier)
        await self._deliver(context.bot, update, reply)

    async def handle_remove(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        if not await self._authorised(update, context):
            return
        identifier = str(update.effective_user.id)
        reply = await self.gateway.handle_remove(identifier)
        await self._deliver(context.bot, update, reply)

    async def _deliver(self, bot: Bot, update: Update, reply: GatewayReply) -> None:
        chat_id = update.effective_chat.id
        user_id = update.effective_user.id

        if reply.reply:
            await send_markdown(bot, chat_id, reply.reply)

        if reply.direct:
            try:
                await send_markdown(bot, user_id, reply.direct)
            except Forbidden:
                logger.info(f"Private message to {user_id} blocked")
                await send_markdown(bot, chat_id, DM_BLOCKED)

        if reply.audit:
            await send_markdown(bot, self.settings.setup_chat_id, reply.audit)


__all__ = ["DM_BLOCKED", "EmailBot", "send_markdown"]
