"""Per-message decision pipeline.

Order (first match wins): pre-filters, operator's own messages (commands and
auto-block), debounce, commands from other senders, manual attendance block,
lead welcome, known lead, returning client, first contact.
"""

import asyncio
import dataclasses
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, Optional

from streambot.config import settings
from streambot.logging_config import LoggerAdapter, get_logger
from streambot.runtime import BotRuntime
from streambot.services.alert_service import alert_warning
from streambot.services.command_service import (
    ParsedCommand,
    execute_command,
    is_authorized,
    parse_command,
    rejection_reply,
    usage_reply,
)
from streambot.services.intent_service import Intent, classify
from streambot.services.knowledge_service import get_context_for_message
from streambot.services.llm import LLMError
from streambot.services.normalizer import (
    clean_message,
    extract_phone_number,
    is_direct_chat,
    is_greeting,
    is_new_lead_message,
    phones_match,
    to_jid,
    wants_fanpage_link,
    wants_human,
)
from streambot.services.prompt_service import (
    PromptContext,
    error_fallback,
    fallback_message,
    fanpage_message,
    get_flow,
    greeting_message,
    lead_welcome,
    returning_welcome,
)
from streambot.services.sales_service import advance, analyze_message
from streambot.services.user_store import DEFAULT_USER_NAME
from streambot.services.whatsapp_service import is_transient_error

logger = get_logger("dispatch_service")


@dataclass
class InboundEvent:
    sender_id: str
    is_from_self: bool
    is_group_or_broadcast: bool
    text: str
    push_name: Optional[str] = None
    message_id: Optional[str] = None
    timestamp: Optional[datetime] = None

    @property
    def phone(self) -> str:
        return extract_phone_number(self.sender_id)


class DispatchAction(str, Enum):
    IGNORED = "ignored"
    DUPLICATE = "duplicate"
    STALE = "stale"
    OWNER_MESSAGE = "owner_message"
    OWNER_BLOCKED = "owner_blocked"
    DEBOUNCED = "debounced"
    COMMAND = "command"
    COMMAND_REJECTED = "command_rejected"
    BLOCKED = "blocked"
    LEAD_WELCOME = "lead_welcome"
    LEAD_REPLY = "lead_reply"
    RETURNING_WELCOME = "returning_welcome"
    GREETING = "greeting"
    REPLY = "reply"
    ERROR = "error"


@dataclass
class DispatchResult:
    action: DispatchAction
    reply: Optional[str] = None
    intent: Optional[Intent] = None
    sent: bool = False


KnowledgeLookup = Callable[[str, Intent], str]


class Dispatcher:
    def __init__(
        self,
        runtime: BotRuntime,
        *,
        owner_phone: str | None = None,
        owner_name: str | None = None,
        conversation_timeout_days: int | None = None,
        knowledge_lookup: KnowledgeLookup = get_context_for_message,
    ):
        self.runtime = runtime
        self.owner_phone = owner_phone if owner_phone is not None else settings.owner_phone
        self.owner_name = owner_name or settings.owner_name
        self.conversation_timeout_days = (
            conversation_timeout_days if conversation_timeout_days is not None else settings.conversation_timeout_days
        )
        self._knowledge_lookup = knowledge_lookup

    async def handle(self, event: InboundEvent) -> DispatchResult:
        """Process one inbound event. Never raises."""
        try:
            return await self._handle(event)
        except Exception as e:
            if is_transient_error(e):
                logger.debug(f"Transient error while processing message: {e}")
            else:
                logger.error(
                    f"Error processing message: {e}",
                    extra={"context": {"jid": event.sender_id, "message_id": event.message_id}},
                    exc_info=True,
                )
            return DispatchResult(action=DispatchAction.ERROR)

    def _prefilter(self, event: InboundEvent, text: str) -> Optional[DispatchAction]:
        if event.is_group_or_broadcast or not is_direct_chat(event.sender_id):
            return DispatchAction.IGNORED
        if not text:
            return DispatchAction.IGNORED
        if self.runtime.processed.seen(event.message_id):
            return DispatchAction.DUPLICATE
        # History replayed after a reconnect must never trigger replies
        if event.timestamp is not None and event.timestamp < self.runtime.started_at:
            return DispatchAction.STALE
        return None

    async def _handle(self, event: InboundEvent) -> DispatchResult:
        text = clean_message(event.text)
        rejected = self._prefilter(event, text)
        if rejected is not None:
            logger.debug(
                f"Inbound event skipped: {rejected.value}",
                extra={"context": {"jid": event.sender_id, "message_id": event.message_id}},
            )
            return DispatchResult(action=rejected)
        self.runtime.processed.add(event.message_id)

        phone = event.phone
        log = LoggerAdapter(logger, {"phone": phone})

        if event.is_from_self:
            return await self._handle_own_message(event, phone, text, log)

        if self.runtime.debounce.should_drop(phone):
            log.debug("Message dropped by debounce")
            return DispatchResult(action=DispatchAction.DEBOUNCED)

        parsed = parse_command(text)
        if parsed.is_command:
            return await self._handle_operator_command(event, phone, parsed, log)

        users = self.runtime.users
        previous = users.get(phone)
        previous = dataclasses.replace(previous) if previous is not None else None
        name = event.push_name or (previous.name if previous else DEFAULT_USER_NAME)
        user = users.record_inbound(phone, event.push_name)
        log.info(f"Message from {name}: {text[:50]}")

        if self.runtime.attendance.check_and_expire(phone):
            log.info("Message ignored, operator is handling this conversation")
            return DispatchResult(action=DispatchAction.BLOCKED)

        if not user.is_new_lead and is_new_lead_message(text):
            users.mark_as_lead(phone)
            reply = lead_welcome(name)
            sent = await self._send(event.sender_id, reply)
            self.runtime.history.append(phone, "user", text)
            self.runtime.history.append(phone, "assistant", reply)
            return DispatchResult(action=DispatchAction.LEAD_WELCOME, reply=reply, sent=sent)

        if user.is_new_lead:
            reply = await self._generate(Intent.PROSPECT, phone, name, text, is_lead=True)
            sent = await self._send(event.sender_id, reply)
            if wants_fanpage_link(text):
                await self._send(event.sender_id, fanpage_message())
            await self._escalate_if_requested(phone, name, text)
            return DispatchResult(action=DispatchAction.LEAD_REPLY, reply=reply, intent=Intent.PROSPECT, sent=sent)

        if previous is not None and users.has_ongoing_conversation(previous, self.conversation_timeout_days):
            if is_greeting(text):
                reply = returning_welcome(name)
                sent = await self._send(event.sender_id, reply)
                self.runtime.history.append(phone, "user", text)
                self.runtime.history.append(phone, "assistant", reply)
                return DispatchResult(action=DispatchAction.RETURNING_WELCOME, reply=reply, sent=sent)
            intent = Intent.SUPPORT if classify(text) == Intent.SUPPORT else Intent.GENERAL
            return await self._reply_with_flow(event, phone, name, text, intent)

        if is_greeting(text):
            reply = greeting_message(name)
            sent = await self._send(event.sender_id, reply)
            self.runtime.history.append(phone, "user", text)
            self.runtime.history.append(phone, "assistant", reply)
            return DispatchResult(action=DispatchAction.GREETING, reply=reply, sent=sent)
        return await self._reply_with_flow(event, phone, name, text, classify(text))

    async def _reply_with_flow(
        self, event: InboundEvent, phone: str, name: str, text: str, intent: Intent
    ) -> DispatchResult:
        reply = await self._generate(intent, phone, name, text, is_lead=False)
        sent = await self._send(event.sender_id, reply)
        await self._escalate_if_requested(phone, name, text)
        return DispatchResult(action=DispatchAction.REPLY, reply=reply, intent=intent, sent=sent)

    async def _handle_own_message(
        self, event: InboundEvent, phone: str, text: str, log: LoggerAdapter
    ) -> DispatchResult:
        in_operator_chat = bool(self.owner_phone) and phones_match(phone, self.owner_phone)
        parsed = parse_command(text)
        if parsed.is_command:
            if in_operator_chat:
                return await self._run_command(event.sender_id, parsed, parsed.target_phone, log)
            # Typed inside the customer's thread: that thread is the target
            return await self._run_command(None, parsed, parsed.target_phone or phone, log)

        if in_operator_chat:
            return DispatchResult(action=DispatchAction.OWNER_MESSAGE)

        attendance = self.runtime.attendance
        if attendance.check_and_expire(phone):
            log.debug("Operator message in a conversation already under manual attendance")
            return DispatchResult(action=DispatchAction.OWNER_MESSAGE)

        count = self.runtime.users.increment_owner_message_count(phone)
        if attendance.block(phone, self.owner_name, force=False):
            log.info(f"Operator took over the conversation after {count} messages")
            return DispatchResult(action=DispatchAction.OWNER_BLOCKED)
        return DispatchResult(action=DispatchAction.OWNER_MESSAGE)

    async def _handle_operator_command(
        self, event: InboundEvent, phone: str, parsed: ParsedCommand, log: LoggerAdapter
    ) -> DispatchResult:
        if not is_authorized(phone, self.owner_phone):
            log.warning(
                "Unauthorized command attempt",
                context={"command": parsed.command.value, "push_name": event.push_name},
            )
            reply = rejection_reply()
            sent = await self._send(event.sender_id, reply)
            return DispatchResult(action=DispatchAction.COMMAND_REJECTED, reply=reply, sent=sent)
        return await self._run_command(event.sender_id, parsed, parsed.target_phone, log)

    def _resolve_target(self, target: str) -> str:
        """Map a typed phone to the key already in use (country code may be missing)."""
        known = [block.phone for block in self.runtime.attendance.blocked_users()]
        known += [user.phone for user in self.runtime.users.all()]
        for phone in known:
            if phones_match(phone, target):
                return phone
        return target

    async def _run_command(
        self,
        reply_jid: Optional[str],
        parsed: ParsedCommand,
        target: Optional[str],
        log: LoggerAdapter,
    ) -> DispatchResult:
        if reply_jid is None and self.owner_phone:
            reply_jid = to_jid(self.owner_phone)

        if not target:
            reply = usage_reply(parsed.command)
            sent = await self._send(reply_jid, reply) if reply_jid else False
            return DispatchResult(action=DispatchAction.COMMAND, reply=reply, sent=sent)

        target = self._resolve_target(target)
        result = execute_command(parsed, target, self.runtime.attendance, self.owner_name)
        outcome = result.value
        log.info(
            f"Command executed: {parsed.command.value}",
            context={"target": target, "ok": result.ok, "code": result.error_code},
        )
        sent = await self._send(reply_jid, outcome.reply) if reply_jid else False
        if result.ok and outcome.customer_notice and reply_jid and not phones_match(extract_phone_number(reply_jid), target):
            await self._send(to_jid(target), outcome.customer_notice)
        return DispatchResult(action=DispatchAction.COMMAND, reply=outcome.reply, sent=sent)

    async def _generate(self, intent: Intent, phone: str, name: str, text: str, is_lead: bool) -> str:
        runtime = self.runtime
        history = runtime.history.get(phone)
        try:
            knowledge = await asyncio.to_thread(self._knowledge_lookup, text, intent)
            ctx = PromptContext(customer_name=name, message=text, history=history, knowledge=knowledge)
            if intent == Intent.PROSPECT:
                sales = runtime.sales.get(phone)
                analysis = analyze_message(text)
                advance(sales, text, analysis, is_first_message=ctx.is_first_message)
                runtime.sales.save(phone, sales)
                ctx.sales, ctx.analysis = sales, analysis

            messages = get_flow(intent).build_messages(ctx)
            response = await runtime.llm.generate(
                messages,
                temperature=settings.groq_temperature,
                max_tokens=settings.groq_max_tokens,
            )
        except LLMError as e:
            logger.warning(
                f"LLM unavailable, sending fallback: {e}",
                extra={"context": {"phone": phone, "kind": e.kind}},
            )
            return error_fallback(e.kind)
        except Exception as e:
            logger.error(f"Error generating reply: {e}", extra={"context": {"phone": phone}}, exc_info=True)
            return fallback_message(name, is_lead)

        runtime.history.append(phone, "user", text)
        runtime.history.append(phone, "assistant", response.content)
        logger.info(
            f"Reply generated: {intent.value}",
            extra={"context": {"phone": phone, "chars": len(response.content)}},
        )
        return response.content

    async def _send(self, jid: str, text: str) -> bool:
        gateway = self.runtime.gateway
        await gateway.simulate_typing(jid, text)
        sent = await gateway.send_text(jid, text)
        if not sent:
            logger.warning("Reply could not be delivered", extra={"context": {"jid": jid}})
            if not (self.owner_phone and phones_match(extract_phone_number(jid), self.owner_phone)):
                await alert_warning(
                    gateway, "Falha ao enviar resposta", {"jid": jid, "chars": len(text)}, owner_phone=self.owner_phone
                )
        return sent

    async def _escalate_if_requested(self, phone: str, name: str, text: str) -> None:
        if not wants_human(text, self.owner_name):
            return
        logger.info("Customer asked for a human", extra={"context": {"phone": phone}})
        await alert_warning(
            self.runtime.gateway,
            f"{name} pediu atendimento humano",
            {"phone": phone, "message": text[:200]},
            owner_phone=self.owner_phone,
        )
