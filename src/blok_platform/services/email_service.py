"""SendGrid email service for building admin alerts.

Sends an alert to building admins when a resident message needs their
attention. Uses asyncio.to_thread to wrap the synchronous SendGrid client.
"""

import asyncio
import html
import logging

import sendgrid
from sendgrid.helpers.mail import Email, HtmlContent, Mail, To

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Configuration: read from Pydantic settings (which loads .env)
# ---------------------------------------------------------------------------


def _get_config():
    """Get email config from app settings (lazy to avoid import-time issues)."""
    from blok_platform.app.config import get_settings
    s = get_settings()
    return s.sendgrid_api_key, s.alert_from_email, s.frontend_url.rstrip("/")


def _get_client() -> sendgrid.SendGridAPIClient:
    """Return a configured SendGrid API client."""
    api_key, _, _ = _get_config()
    return sendgrid.SendGridAPIClient(api_key=api_key)


_PRIORITY_COLORS = {
    "emergency": "#b91c1c",
    "high": "#c2410c",
    "medium": "#1d4ed8",
    "low": "#4b5563",
}

_LABELS = {
    "es": {
        "heading": "Mensaje de residente requiere atención",
        "resident": "Residente",
        "unit": "Unidad",
        "intent": "Tipo",
        "priority": "Prioridad",
        "message": "Mensaje",
        "cta": "Ver conversación",
    },
    "en": {
        "heading": "Resident message needs attention",
        "resident": "Resident",
        "unit": "Unit",
        "intent": "Type",
        "priority": "Priority",
        "message": "Message",
        "cta": "View conversation",
    },
}


def _build_admin_alert_html(data: dict, language: str = "es") -> str:
    """Build the admin alert HTML email body."""
    labels = _LABELS.get(language, _LABELS["es"])
    _, _, frontend_url = _get_config()

    priority = data.get("priority", "medium")
    color = _PRIORITY_COLORS.get(priority, _PRIORITY_COLORS["medium"])
    resident = html.escape(data.get("resident_name") or "N/A")
    unit = html.escape(data.get("unit_number") or "N/A")
    intent = html.escape(data.get("intent") or "other")
    body = html.escape(data.get("message") or "")
    link = f"{frontend_url}/dashboard/conversations/{data.get('conversation_id', '')}"

    return f"""
<!DOCTYPE html>
<html lang="{language}">
<head><meta charset="UTF-8"></head>
<body style="margin: 0; padding: 20px; font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif; background-color: #f3f4f6;">
    <table width="600" cellpadding="0" cellspacing="0" style="background: #fff; border-radius: 8px; padding: 32px; margin: 0 auto;">
        <tr>
            <td>
                <h2 style="color: {color}; margin-top: 0;">{labels["heading"]}</h2>
                <table width="100%" cellpadding="6" cellspacing="0" style="font-size: 14px; color: #374151;">
                    <tr><td style="font-weight:600; width:140px;">{labels["resident"]}:</td><td>{resident}</td></tr>
                    <tr><td style="font-weight:600;">{labels["unit"]}:</td><td>{unit}</td></tr>
                    <tr><td style="font-weight:600;">{labels["intent"]}:</td><td>{intent}</td></tr>
                    <tr><td style="font-weight:600;">{labels["priority"]}:</td><td style="color:{color}; font-weight:600;">{priority.upper()}</td></tr>
                </table>
                <h3 style="color:#374151; margin-top:24px;">{labels["message"]}</h3>
                <p style="font-size:15px; color:#4b5563; white-space:pre-wrap;">{body}</p>
                <a href="{link}" style="display:inline-block; margin-top:16px; padding:10px 18px; background:#111827; color:#fff; border-radius:6px; text-decoration:none;">{labels["cta"]}</a>
            </td>
        </tr>
    </table>
</body>
</html>
"""


def _send_mail(mail: Mail) -> bool:
    """Synchronous send via SendGrid. Returns True on success."""
    client = _get_client()
    response = client.send(mail)
    if response.status_code in (200, 201, 202):
        return True
    logger.error(
        "SendGrid returned status %s: %s",
        response.status_code,
        response.body,
    )
    return False


# ---------------------------------------------------------------------------
# Public async API
# ---------------------------------------------------------------------------


async def send_admin_alert(to_email: str, data: dict, language: str = "es") -> bool:
    """Email one building admin about a message that needs review.

    Args:
        to_email: Admin notification address.
        data: Dict with building_name, resident_name, unit_number, intent,
              priority, message and conversation_id.
        language: "es" or "en".

    Returns:
        True on success, False on failure.
    """
    api_key, alert_from, _ = _get_config()
    if not api_key:
        logger.warning("SENDGRID_API_KEY not set, skipping admin alert email")
        return False

    try:
        building = data.get("building_name") or "Blok"
        priority = (data.get("priority") or "medium").upper()
        mail = Mail(
            from_email=Email(alert_from, f"Blok - {building}"),
            to_emails=To(to_email),
            subject=f"[Blok] [{priority}] {data.get('intent', 'other')} - {building}",
            html_content=HtmlContent(_build_admin_alert_html(data, language)),
        )
        result = await asyncio.to_thread(_send_mail, mail)
        if result:
            logger.info("Admin alert sent to %s (priority=%s)", to_email, priority)
        return result
    except Exception:
        logger.exception("Failed to send admin alert to %s", to_email)
        return False
