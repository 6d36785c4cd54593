"""SMS delivery with Twilio and Vonage support, falling back to the application log."""
from __future__ import annotations

import base64
import http.client
import json
import re
from decimal import Decimal
from typing import Tuple
from urllib.parse import urlencode

from flask import current_app

from ..utils import mask_phone

_NON_DIALABLE = re.compile(r"[^\d+]")


def format_payment_link_sms(*, client_name: str | None, job_title: str, amount, url: str) -> str:
    amount = Decimal(str(amount))
    return (
        f"Hi {client_name or 'Valued Client'}! Your payment link for \"{job_title}\" "
        f"(${amount:.2f}) is ready: {url}"
    )


def send_sms(phone: str | None, message: str | None, job_id: str | None = None) -> Tuple[bool, str | None]:
    """Send an SMS via Twilio if configured, then Vonage, otherwise log it."""
    if not phone or not message:
        return False, "Phone number and message are required"
    if not current_app.config.get("SMS_ENABLED", True):
        return False, "SMS notifications are disabled"

    current_app.logger.info(
        "Sending SMS to %s for job %s (%d chars)", mask_phone(phone), job_id or "n/a", len(message)
    )

    attempted = False
    last_error: str | None = None

    sid = current_app.config.get("TWILIO_ACCOUNT_SID", "")
    token = current_app.config.get("TWILIO_AUTH_TOKEN", "")
    sender = current_app.config.get("TWILIO_PHONE_NUMBER", "")
    if sid and token and sender:
        attempted = True
        ok, last_error = _send_via_twilio(sid, token, sender, phone, message)
        if ok:
            return True, None
        current_app.logger.warning("Twilio SMS failed for job %s: %s", job_id, last_error)
        # fall through to Vonage on Twilio failure

    api_key = current_app.config.get("VONAGE_API_KEY", "")
    api_secret = current_app.config.get("VONAGE_API_SECRET", "")
    if api_key and api_secret:
        attempted = True
        ok, last_error = _send_via_vonage(api_key, api_secret, phone, message)
        if ok:
            return True, None
        current_app.logger.warning("Vonage SMS failed for job %s: %s", job_id, last_error)

    if attempted:
        return False, last_error

    current_app.logger.info(
        "No SMS provider configured; message for %s (job %s): %s", mask_phone(phone), job_id or "n/a", message
    )
    return True, None


def _timeout() -> float:
    return float(current_app.config.get("SMS_TIMEOUT_SECONDS", 10))


def _send_via_twilio(sid: str, token: str, sender: str, phone: str, message: str) -> Tuple[bool, str | None]:
    credentials = base64.b64encode(f"{sid}:{token}".encode()).decode()
    body = urlencode({"From": sender, "To": phone, "Body": message})
    headers = {
        "Authorization": f"Basic {credentials}",
        "Content-Type": "application/x-www-form-urlencoded",
    }

    try:
        conn = http.client.HTTPSConnection("api.twilio.com", timeout=_timeout())
        conn.request("POST", f"/2010-04-01/Accounts/{sid}/Messages.json", body=body, headers=headers)
        response = conn.getresponse()
        status = response.status
        data = response.read().decode()
    except Exception as exc:  # pragma: no cover - network dependent
        return False, f"Twilio send failed: {exc}"

    if 200 <= status < 300:
        return True, None
    return False, f"Twilio error {status}: {data}"


def _send_via_vonage(api_key: str, api_secret: str, phone: str, message: str) -> Tuple[bool, str | None]:
    payload = {
        "from": current_app.config.get("SMS_SENDER_NAME", "SmartInvoice"),
        "to": _NON_DIALABLE.sub("", phone),
        "text": message,
        "api_key": api_key,
        "api_secret": api_secret,
    }

    try:
        conn = http.client.HTTPSConnection("rest.nexmo.com", timeout=_timeout())
        conn.request("POST", "/sms/json", body=json.dumps(payload), headers={"Content-Type": "application/json"})
        response = conn.getresponse()
        status = response.status
        data = response.read().decode()
    except Exception as exc:  # pragma: no cover - network dependent
        return False, f"Vonage send failed: {exc}"

    try:
        messages = json.loads(data).get("messages") or [{}]
    except ValueError:
        return False, f"Vonage error {status}: {data}"

    first = messages[0]
    if 200 <= status < 300 and first.get("status") == "0":
        return True, None
    return False, f"Vonage error: {first.get('error-text') or 'Unknown error'}"
