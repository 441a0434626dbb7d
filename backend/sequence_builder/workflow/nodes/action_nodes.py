"""
Action Nodes — email sends, waits, and webhooks.

Single-input, single-output blocks. Webhooks are drawn and simulated
but the legacy runner cannot execute them.
"""

from __future__ import annotations

from sequence_builder.workflow.nodes.base import BaseNode, register_node
from sequence_builder.workflow.workflow_model import (
    NodeKind,
    SendEmailConfig,
    WaitConfig,
    WebhookConfig,
)


@register_node
class SendEmailNodeType(BaseNode):
    node_type = NodeKind.SEND_EMAIL
    label = "Send Email"
    description = "Send personalized email content."
    icon = "mail"

    def create_default_config(self) -> SendEmailConfig:
        return SendEmailConfig(
            subject="Quick question about {company}",
            body=(
                "Hi {first_name},\n\n"
                "I wanted to follow up on {company}.\n\n"
                "Best,\n{sender_name}"
            ),
            personalization_tokens=["{first_name}", "{company}", "{sender_name}"],
            thread_with_previous=True,
        )


@register_node
class WaitNodeType(BaseNode):
    node_type = NodeKind.WAIT
    label = "Wait"
    description = "Pause contacts for a delay window."
    icon = "pause-circle"

    def create_default_config(self) -> WaitConfig:
        return WaitConfig(
            duration=1,
            unit="days",
            randomized=False,
            random_max_minutes=0,
            time_window_start="09:00",
            time_window_end="18:00",
        )


@register_node
class WebhookNodeType(BaseNode):
    node_type = NodeKind.WEBHOOK
    label = "Webhook"
    description = "Notify external systems in real time."
    icon = "webhook"
    supports_runner = False

    def create_default_config(self) -> WebhookConfig:
        return WebhookConfig(
            url="https://api.example.com/webhook",
            method="POST",
            payload_template='{"email":"{email}"}',
        )
