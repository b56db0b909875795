"""Email send node.

Sends email through SendGrid (JSON API), Mailgun (form-encoded API) or a
plain SMTP server via aiosmtplib.
"""

import base64
from dataclasses import dataclass, field
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Any

import aiosmtplib

from nodeflow.models.credential import CredentialDecrypted, CredentialType
from nodeflow.models.execution import LogLevel
from nodeflow.models.node import (
    NodeCategory,
    NodeDefinition,
    NodeField,
    NodeFieldType,
    NodeType,
)
from nodeflow.nodes.base import BaseNode, NodeContext, NodeValidationError, credential_secret
from nodeflow.nodes.helpers import parse_response_body, send_request, split_addresses

SENDGRID_URL = "https://api.sendgrid.com/v3/mail/send"
MAILGUN_URL = "https://api.mailgun.net/v3/{domain}/messages"

PROVIDERS = ("sendgrid", "mailgun", "smtp")

PROVIDER_CREDENTIAL_TYPES: dict[str, list[CredentialType]] = {
    "sendgrid": [CredentialType.API_KEY, CredentialType.BEARER_TOKEN],
    "mailgun": [CredentialType.API_KEY, CredentialType.CUSTOM],
    "smtp": [CredentialType.BASIC_AUTH, CredentialType.CUSTOM],
}


@dataclass
class EmailConfig:
    """Configuration for email node."""

    credential_id: str
    provider: str
    sender: str
    to: str
    subject: str = ""
    body: str = ""
    html_body: str | None = None
    cc: str | None = None
    bcc: str | None = None


@dataclass
class EmailMessage:
    """Email with templates resolved."""

    sender: str
    to: list[str]
    subject: str
    body: str
    html_body: str | None = None
    cc: list[str] = field(default_factory=list)
    bcc: list[str] = field(default_factory=list)


class EmailSendNode(BaseNode[EmailConfig]):
    """Send an email."""

    label = "Email"

    def get_definition(self) -> NodeDefinition:
        return NodeDefinition(
            node_type=NodeType.EMAIL_SEND,
            display_name="Email: Send",
            description="Send an email via SendGrid, Mailgun or SMTP",
            category=NodeCategory.COMMUNICATION,
            credential_types=sorted(
                {t.value for types in PROVIDER_CREDENTIAL_TYPES.values() for t in types}
            ),
            fields=[
                NodeField(
                    name="credentialId",
                    display_name="Credential",
                    type=NodeFieldType.CREDENTIAL,
                    required=True,
                ),
                NodeField(
                    name="provider",
                    display_name="Provider",
                    type=NodeFieldType.STRING,
                    default="sendgrid",
                    options=list(PROVIDERS),
                ),
                NodeField(name="from", display_name="From", type=NodeFieldType.STRING, required=True),
                NodeField(
                    name="to",
                    display_name="To",
                    type=NodeFieldType.STRING,
                    description="Comma-separated addresses",
                    required=True,
                    templated=True,
                ),
                NodeField(name="cc", display_name="CC", type=NodeFieldType.STRING, templated=True),
                NodeField(name="bcc", display_name="BCC", type=NodeFieldType.STRING, templated=True),
                NodeField(
                    name="subject",
                    display_name="Subject",
                    type=NodeFieldType.STRING,
                    templated=True,
                ),
                NodeField(name="body", display_name="Body", type=NodeFieldType.STRING, templated=True),
                NodeField(
                    name="htmlBody",
                    display_name="HTML Body",
                    type=NodeFieldType.STRING,
                    templated=True,
                ),
            ],
            tags=["email", "messaging"],
        )

    def validate_input(self, data: dict[str, Any]) -> EmailConfig:
        provider = data.get("provider") or "sendgrid"
        if provider not in PROVIDERS:
            raise NodeValidationError(
                f"Unsupported email provider: {provider}", field="provider"
            )
        if not data.get("from"):
            raise NodeValidationError("Email node requires a from address", field="from")
        if not data.get("to"):
            raise NodeValidationError("Email node requires a recipient", field="to")

        return EmailConfig(
            credential_id=data.get("credentialId") or "",
            provider=provider,
            sender=data["from"],
            to=data["to"],
            subject=data.get("subject") or "",
            body=data.get("body") or "",
            html_body=data.get("htmlBody") or None,
            cc=data.get("cc") or None,
            bcc=data.get("bcc") or None,
        )

    def _resolve(self, config: EmailConfig, context: NodeContext) -> EmailMessage:
        message = EmailMessage(
            sender=context.resolve(config.sender),
            to=split_addresses(context.resolve(config.to)),
            subject=context.resolve(config.subject),
            body=context.resolve(config.body),
            html_body=context.resolve(config.html_body),
            cc=split_addresses(context.resolve(config.cc)),
            bcc=split_addresses(context.resolve(config.bcc)),
        )
        if not message.to:
            raise NodeValidationError(
                "No recipients after template resolution", field="to"
            )
        return message

    async def execute(self, config: EmailConfig, context: NodeContext) -> Any:
        credential = await context.get_credential(
            config.credential_id,
            PROVIDER_CREDENTIAL_TYPES[config.provider],
            self.label,
        )
        message = self._resolve(config, context)

        if config.provider == "sendgrid":
            result = await self._send_sendgrid(message, credential, context)
        elif config.provider == "mailgun":
            result = await self._send_mailgun(message, credential, context)
        else:
            result = await self._send_smtp(message, credential)

        context.log(
            LogLevel.INFO,
            "Email sent",
            {"recipients": message.to, "provider": config.provider},
        )
        return result

    async def _send_sendgrid(
        self,
        message: EmailMessage,
        credential: CredentialDecrypted,
        context: NodeContext,
    ) -> Any:
        api_key = credential_secret(credential, "apiKey", "api_key", "token")

        personalization: dict[str, Any] = {"to": [{"email": a} for a in message.to]}
        if message.cc:
            personalization["cc"] = [{"email": a} for a in message.cc]
        if message.bcc:
            personalization["bcc"] = [{"email": a} for a in message.bcc]

        content = [{"type": "text/plain", "value": message.body}]
        if message.html_body:
            content.append({"type": "text/html", "value": message.html_body})

        response = await send_request(
            context,
            "POST",
            SENDGRID_URL,
            headers={"Authorization": f"Bearer {api_key}"},
            json_body={
                "personalizations": [personalization],
                "from": {"email": message.sender},
                "subject": message.subject,
                "content": content,
            },
        )
        # SendGrid answers 202 with an empty body
        return {
            "sent": True,
            "provider": "sendgrid",
            "status": response.status_code,
            "messageId": response.headers.get("x-message-id"),
        }

    async def _send_mailgun(
        self,
        message: EmailMessage,
        credential: CredentialDecrypted,
        context: NodeContext,
    ) -> Any:
        api_key = credential_secret(credential, "apiKey", "api_key")
        domain = "sandbox"
        if isinstance(credential.data, dict) and credential.data.get("domain"):
            domain = credential.data["domain"]

        form = {
            "from": message.sender,
            "to": ", ".join(message.to),
            "subject": message.subject,
            "text": message.body,
        }
        if message.html_body:
            form["html"] = message.html_body
        if message.cc:
            form["cc"] = ", ".join(message.cc)
        if message.bcc:
            form["bcc"] = ", ".join(message.bcc)

        basic = base64.b64encode(f"api:{api_key}".encode()).decode()
        response = await send_request(
            context,
            "POST",
            MAILGUN_URL.format(domain=domain),
            headers={"Authorization": f"Basic {basic}"},
            data=form,
        )
        return parse_response_body(response)

    async def _send_smtp(
        self,
        message: EmailMessage,
        credential: CredentialDecrypted,
    ) -> Any:
        settings = credential.data if isinstance(credential.data, dict) else {}
        host = settings.get("host")
        if not host:
            raise NodeValidationError("SMTP credential requires a host", field="credentialId")
        port = int(settings.get("port") or 587)

        if message.html_body:
            mime: MIMEMultipart | MIMEText = MIMEMultipart("alternative")
            mime.attach(MIMEText(message.body, "plain"))
            mime.attach(MIMEText(message.html_body, "html"))
        else:
            mime = MIMEText(message.body, "plain")
        mime["Subject"] = message.subject
        mime["From"] = message.sender
        mime["To"] = ", ".join(message.to)
        if message.cc:
            mime["Cc"] = ", ".join(message.cc)

        recipients = message.to + message.cc + message.bcc
        await aiosmtplib.send(
            mime,
            recipients=recipients,
            hostname=host,
            port=port,
            username=settings.get("username") or settings.get("user"),
            password=settings.get("password"),
            use_tls=port == 465,
            start_tls=port == 587,
            timeout=30,
        )
        return {"sent": True, "provider": "smtp", "recipients": recipients}
