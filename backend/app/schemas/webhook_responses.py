"""Acknowledgement bodies returned by webhook endpoints."""

from pydantic import ConfigDict

from ._strict_base import StrictModel


class WebhookAckResponse(StrictModel):
    """Webhook senders only look at the status code; the body is a plain ack."""

    model_config = ConfigDict(extra="forbid", validate_assignment=True)
    ok: bool = True


__all__ = ["WebhookAckResponse"]
