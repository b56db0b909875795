"""Communication nodes - messaging providers."""

from nodeflow.nodes.communication.discord import DiscordSendMessageNode
from nodeflow.nodes.communication.email_send import EmailSendNode
from nodeflow.nodes.communication.slack import SlackSendMessageNode

__all__ = [
    "DiscordSendMessageNode",
    "EmailSendNode",
    "SlackSendMessageNode",
]
