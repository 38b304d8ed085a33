"""Chat Protocol factory so the profiler can be discovered and queried via ASI:One."""

from datetime import datetime, timezone
from uuid import uuid4

from uagents import Context, Protocol
from uagents_core.contrib.protocols.chat import (
    ChatAcknowledgement,
    ChatMessage,
    EndSessionContent,
    TextContent,
)


def extract_text(msg: ChatMessage) -> str:
    """Text of the first TextContent block, or ""."""
    for item in msg.content:
        if isinstance(item, TextContent):
            return item.text
    return ""


def create_chat_protocol(
    agent_name: str,
    description: str,
    handler_fn=None,
) -> Protocol:
    """Create a Chat Protocol instance for an agent.

    Args:
        agent_name: Display name for the agent.
        description: What the agent does (used for ASI:One ranking).
        handler_fn: Optional async function(ctx, sender, text) -> str.
                    Without one the agent answers with its description.
    """
    chat_proto = Protocol(name="chat", version="0.3.0")

    @chat_proto.on_message(ChatMessage)
    async def handle_chat(ctx: Context, sender: str, msg: ChatMessage):
        await ctx.send(
            sender,
            ChatAcknowledgement(
                timestamp=datetime.now(timezone.utc),
                acknowledged_msg_id=msg.msg_id,
            ),
        )

        text = extract_text(msg)
        if handler_fn:
            response_text = await handler_fn(ctx, sender, text)
        else:
            response_text = f"I'm {agent_name}. {description}"

        await ctx.send(
            sender,
            ChatMessage(
                timestamp=datetime.now(timezone.utc),
                msg_id=uuid4(),
                content=[TextContent(type="text", text=response_text), EndSessionContent(type="end-session")],
            ),
        )

    @chat_proto.on_message(ChatAcknowledgement)
    async def handle_ack(ctx: Context, sender: str, msg: ChatAcknowledgement):
        ctx.logger.debug("Chat message %s acknowledged by %s", msg.acknowledged_msg_id, sender)

    return chat_proto
