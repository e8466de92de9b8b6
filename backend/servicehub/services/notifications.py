"""Outbound notifications: transactional email (Brevo) and optional WhatsApp.

Nothing in here raises to the caller.  Every send returns True/False and
logs the outcome; the business operation that triggered it has already
committed by the time a message goes out.

Handles are built once in the application lifespan (see
services.scheduler.build_services) and reached through get_notifications(),
so tests can swap in a fake with app.dependency_overrides.
"""

import asyncio
import logging
import re
from dataclasses import dataclass
from datetime import date
from html import escape

import httpx
from fastapi import Request

from servicehub.config import Settings

logger = logging.getLogger("servicehub.notifications")


# ── Email transport ─────────────────────────────────────────

@dataclass
class BrevoMailer:
    """Brevo transactional email API over httpx.  One attempt per message."""

    api_key: str
    from_email: str
    from_name: str
    api_url: str = "https://api.brevo.com/v3/smtp/email"
    timeout: float = 10.0
    transport: httpx.AsyncBaseTransport | None = None

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    async def send_email(self, to: str, subject: str, html: str) -> bool:
        if not self.enabled:
            logger.warning("Mail disabled (no API key); dropping '%s' to %s", subject, to)
            return False

        payload = {
            "sender": {"name": self.from_name, "email": self.from_email},
            "to": [{"email": to}],
            "subject": subject,
            "htmlContent": html,
        }
        headers = {
            "accept": "application/json",
            "api-key": self.api_key,
            "content-type": "application/json",
        }

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self.transport
            ) as client:
                response = await client.post(self.api_url, json=payload, headers=headers)
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            logger.error("Network error sending '%s' to %s: %s", subject, to, exc)
            return False

        if response.status_code == 201:
            logger.info("Email '%s' sent to %s", subject, to)
            return True

        logger.error(
            "Brevo API error for %s: %s - %s",
            to, response.status_code, response.text[:200],
        )
        return False


# ── WhatsApp transport (optional) ───────────────────────────

def normalize_phone(raw: str, default_country_code: str = "") -> str:
    """Normalize a user-entered phone number to E.164.

    "0412 345 678" with country code 61 becomes "+61412345678".
    """
    number = raw.strip()
    if number.startswith("whatsapp:"):
        number = number[len("whatsapp:"):]
    number = re.sub(r"[^\d+]", "", number)
    if "+" in number:
        number = "+" + number.replace("+", "")
    if not number.startswith("+"):
        number = number.lstrip("0")
        number = f"+{default_country_code}{number}"
    return number


class WhatsAppMessenger:
    """Twilio WhatsApp sender.  Disabled unless credentials are configured."""

    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        from_number: str,
        default_country_code: str = "",
    ):
        self.from_number = from_number
        self.default_country_code = default_country_code
        self._client = None
        if account_sid and auth_token and from_number:
            from twilio.rest import Client
            self._client = Client(account_sid, auth_token)

    @property
    def enabled(self) -> bool:
        return self._client is not None

    async def send(self, to: str, body: str) -> bool:
        if not self.enabled or not to:
            return False

        to_addr = f"whatsapp:{normalize_phone(to, self.default_country_code)}"
        from_addr = (
            self.from_number
            if self.from_number.startswith("whatsapp:")
            else f"whatsapp:{self.from_number}"
        )
        try:
            await asyncio.to_thread(
                self._client.messages.create, body=body, from_=from_addr, to=to_addr
            )
        except Exception:
            logger.exception("WhatsApp send to %s failed", to_addr)
            return False
        logger.info("WhatsApp sent to %s", to_addr)
        return True


# ── Message formatting ──────────────────────────────────────

def _fmt_date(d: date | None) -> str:
    return d.strftime("%A, %d %B %Y") if d else "N/A"


def _fmt_amount(amount, currency: str | None = None) -> str:
    text = f"{float(amount or 0):.2f}"
    return f"{text} {currency.upper()}" if currency else text


def _wrap(title: str, body: str) -> str:
    return (
        '<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">'
        f'<h2 style="color: #480082;">{title}</h2>'
        f"{body}"
        "<p>Best regards,<br/>The ServiceHub Team</p>"
        "</div>"
    )


def _details(rows: list[tuple[str, str]]) -> str:
    items = "".join(f"<li><strong>{escape(k)}:</strong> {escape(v)}</li>" for k, v in rows)
    return (
        '<div style="background: #f5f5f5; padding: 20px; border-radius: 8px; margin: 20px 0;">'
        f'<ul style="list-style: none; padding: 0;">{items}</ul>'
        "</div>"
    )


def days_text(days: int) -> str:
    return "tomorrow" if days == 1 else f"in {days} days"


class NotificationService:
    """Formats and sends the platform's client-facing messages."""

    def __init__(
        self,
        mailer: BrevoMailer,
        messenger: WhatsAppMessenger | None = None,
        frontend_url: str = "",
    ):
        self.mailer = mailer
        self.messenger = messenger
        self.frontend_url = frontend_url.rstrip("/")

    async def _dispatch(
        self, email: str, subject: str, html: str, phone: str | None = None, text: str | None = None
    ) -> bool:
        sent = await self.mailer.send_email(email, subject, html)
        if not sent:
            logger.error("Failed to send '%s' to %s", subject, email)
        if phone and text and self.messenger and self.messenger.enabled:
            await self.messenger.send(phone, text)
        return sent

    async def notify_assignment_created(
        self,
        *,
        email: str,
        client_name: str | None,
        service_name: str,
        description: str | None,
        price,
        currency: str,
        cycle: str,
        start_date: date | None,
        token: str,
    ) -> bool:
        link = f"{self.frontend_url}/verify/{token}"
        body = (
            f"<p>Dear {escape(client_name or 'Valued Client')},</p>"
            f"<p>A new service has been assigned to you, starting {escape(_fmt_date(start_date))}.</p>"
            + _details([
                ("Service Name", service_name),
                ("Description", description or ""),
                ("Price", _fmt_amount(price, currency)),
                ("Billing Cycle", cycle),
            ])
            + f'<p>To accept this service, please <a href="{escape(link)}">click here</a>. '
            "The link is valid for 7 days.</p>"
        )
        return await self._dispatch(
            email, "New Service Assigned", _wrap("New Service Assigned", body)
        )

    async def notify_new_renewal(
        self,
        *,
        email: str,
        client_name: str | None,
        service_name: str | None,
        label: str,
        due_date: date,
        price,
        currency: str | None = None,
        phone: str | None = None,
    ) -> bool:
        service = service_name or "your service"
        body = (
            f"<p>Dear {escape(client_name or 'Valued Client')},</p>"
            f"<p>A new renewal has been added to your service <strong>{escape(service)}</strong>.</p>"
            + _details([
                ("Label", label),
                ("Date", _fmt_date(due_date)),
                ("Amount", _fmt_amount(price, currency)),
            ])
            + "<p>You will receive reminder notifications before the renewal date.</p>"
        )
        text = (
            f"New renewal added for {service}: {label} due {_fmt_date(due_date)}, "
            f"amount {_fmt_amount(price, currency)}."
        )
        return await self._dispatch(
            email, f"New Renewal Added - {service}", _wrap("New Renewal Added", body),
            phone=phone, text=text,
        )

    async def notify_renewal_reminder(
        self,
        *,
        email: str,
        client_name: str | None,
        service_name: str | None,
        label: str,
        due_date: date,
        price,
        days: int,
        currency: str | None = None,
        phone: str | None = None,
    ) -> bool:
        service = service_name or "your service"
        when = days_text(days)
        body = (
            f"<p>Dear {escape(client_name or 'Valued Client')},</p>"
            f"<p>This is a reminder that your renewal payment is due <strong>{when}</strong>.</p>"
            + _details([
                ("Service", service),
                ("Label", label),
                ("Due Date", _fmt_date(due_date)),
                ("Amount", _fmt_amount(price, currency)),
            ])
            + "<p>Please ensure payment is made before the due date to avoid service interruption.</p>"
            "<p>If you have already made the payment, please disregard this message.</p>"
        )
        text = (
            f"Reminder: {label} for {service} is due {when} "
            f"({_fmt_date(due_date)}), amount {_fmt_amount(price, currency)}."
        )
        return await self._dispatch(
            email,
            f"Reminder: Renewal Payment Due {when} - {service}",
            _wrap("Renewal Reminder", body),
            phone=phone, text=text,
        )

    async def notify_renewal_paid(
        self,
        *,
        email: str,
        client_name: str | None,
        service_name: str | None,
        label: str,
        due_date: date | None,
        amount,
        currency: str | None = None,
        invoice_id: str | None = None,
    ) -> bool:
        service = service_name or "your service"
        rows = [
            ("Service", service),
            ("Label", label),
            ("Due Date", _fmt_date(due_date)),
            ("Amount", _fmt_amount(amount, currency)),
        ]
        if invoice_id:
            rows.append(("Invoice", invoice_id))
        body = (
            f"<p>Dear {escape(client_name or 'Valued Client')},</p>"
            "<p>We have received your renewal payment. Thank you!</p>"
            + _details(rows)
        )
        return await self._dispatch(
            email, f"Payment Received - {service}", _wrap("Payment Received", body)
        )

    async def send_invite(
        self,
        *,
        email: str,
        first_name: str | None,
        invite_by: str | None,
        token: str,
    ) -> bool:
        link = f"{self.frontend_url}/createaccount/{token}"
        inviter = f" by {escape(invite_by)}" if invite_by else ""
        body = (
            f"<p>Hello {escape(first_name or 'there')},</p>"
            f"<p>You have been invited{inviter} to join the ServiceHub client portal.</p>"
            f'<p><a href="{escape(link)}">Accept your invitation</a>. '
            "This invitation expires in 5 days.</p>"
        )
        return await self._dispatch(email, "You're invited to ServiceHub", _wrap("Invitation", body))

    async def send_verification(self, *, email: str, token: str) -> bool:
        link = f"{self.frontend_url}/email-link-callback?token={token}"
        body = (
            "<p>Please confirm your email address.</p>"
            f'<p><a href="{escape(link)}">Verify email</a>. The link is valid for one hour.</p>'
        )
        return await self._dispatch(email, "Verify your email", _wrap("Verify your email", body))


# ── Construction & dependency ───────────────────────────────

def build_notification_service(settings: Settings) -> NotificationService:
    mailer = BrevoMailer(
        api_key=settings.brevo_api_key,
        from_email=settings.mail_from_email,
        from_name=settings.mail_from_name,
        api_url=settings.brevo_api_url,
        timeout=settings.mail_timeout_seconds,
    )
    messenger = WhatsAppMessenger(
        settings.twilio_account_sid,
        settings.twilio_auth_token,
        settings.twilio_whatsapp_number,
        settings.default_country_code,
    )
    return NotificationService(mailer, messenger, settings.frontend_url)


def get_notifications(request: Request) -> NotificationService:
    return request.app.state.notifications
