from typing import Any, Dict, List, Optional
import logging
import re
import httpx

from app.core.config import settings

logger = logging.getLogger(__name__)

_NON_DIGIT = re.compile(r"\D")


def format_phone_number(phone: Optional[str]) -> Optional[str]:
    """Normalize an Indian mobile number to 91XXXXXXXXXX, or None if it cannot be"""
    if not phone:
        return None
    digits = _NON_DIGIT.sub("", phone)
    if len(digits) == 12 and digits.startswith("91"):
        return digits
    if len(digits) == 10:
        return f"91{digits}"
    if len(digits) == 11 and digits.startswith("0"):
        return f"91{digits[1:]}"
    return None


class WhatsAppClient:
    """
    Async client for the WhatsApp campaign API.
    Env-driven configuration to avoid hardcoding secrets.
    """
    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.enabled: bool = getattr(settings, "WHATSAPP_ENABLED", False)
        self.api_key: Optional[str] = getattr(settings, "WHATSAPP_API_KEY", None)
        self.user_name: str = getattr(settings, "WHATSAPP_USER_NAME", "")
        self.source: str = getattr(settings, "WHATSAPP_SOURCE", "")
        self.base_url: str = settings.WHATSAPP_API_URL
        self._transport = transport

    def build_payload(self, campaign_name: str, destination: str, template_params: List[str]) -> Dict[str, Any]:
        return {
            "apiKey": self.api_key,
            "campaignName": campaign_name,
            "destination": destination,
            "userName": self.user_name,
            "templateParams": template_params,
            "source": self.source,
            "media": {},
            "buttons": [],
            "carouselCards": [],
            "location": {},
            "attributes": {},
            "paramsFallbackValue": {"FirstName": "user"},
        }

    async def send_campaign(self, campaign_name: str, destination: str, template_params: List[str]) -> dict:
        if not self.enabled:
            logger.info("WhatsApp sending disabled; skipping actual call.")
            return {"status": "disabled", "destination": destination, "campaign": campaign_name}

        if not self.api_key:
            logger.error("WhatsApp configuration missing (api_key).")
            return {"status": "error", "error": "missing_configuration"}

        payload = self.build_payload(campaign_name, destination, template_params)

        timeout = httpx.Timeout(10.0, connect=10.0)
        async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as client:
            try:
                r = await client.post(self.base_url, json=payload)
                data = r.json() if r.headers.get("content-type", "").startswith("application/json") else {"text": r.text}
                if r.is_success:
                    return {"status": "ok", "provider_response": data}
                else:
                    logger.error("WhatsApp send failed: %s | %s", r.status_code, data)
                    return {"status": "error", "code": r.status_code, "provider_response": data}
            except Exception as e:
                logger.exception("WhatsApp send exception: %s", e)
                return {"status": "error", "exception": str(e)}
