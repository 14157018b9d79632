import json

import httpx
import pytest

from app.models.shared.enums import PerformanceTier
from app.services.communication.kpi_notification_service import (
    NO_TOP_PERFORMERS, build_template_params, campaign_for, score_text, top_performers_text
)
from app.services.communication.whatsapp_service import WhatsAppClient, format_phone_number


@pytest.mark.parametrize("raw, expected", [
    ("9876543210", "919876543210"),
    ("+91 98765-43210", "919876543210"),
    ("919876543210", "919876543210"),
    ("09876543210", "919876543210"),
    ("12345", None),
    ("", None),
    (None, None),
])
def test_format_phone_number(raw, expected):
    assert format_phone_number(raw) == expected


def test_campaign_names():
    assert campaign_for(PerformanceTier.TOP) == "Top_Perfomer_API"
    assert campaign_for(PerformanceTier.BOTTOM) == "Bottom_Performer"
    assert campaign_for(PerformanceTier.MIDDLE) == "Medium_Perfomer_API"


def test_template_params_per_tier():
    assert build_template_params(PerformanceTier.TOP, "Asha", "90.00 / 100.00", 1, "A: 90.00") == [
        "Asha", "90.00 / 100.00", "1", "A: 90.00",
    ]
    assert build_template_params(PerformanceTier.MIDDLE, "Bina", "50.00 / 100.00", 2, "A: 50.00") == [
        "Bina", "50.00 / 100.00", "2", "A: 50.00", NO_TOP_PERFORMERS,
    ]


def test_top_performers_text():
    text = top_performers_text(
        [{"rank": 1, "name": "Asha", "score": 90}, {"rank": 2, "name": None, "score": 85.5}], 100
    )
    assert text == "Rank 1 : Asha - 90.00 / 100.00\nRank 2 : Unknown - 85.50 / 100.00"
    assert score_text(None, 60) == "0.00 / 60.00"


async def test_send_campaign_posts_payload():
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, json={"success": True})

    client = WhatsAppClient(transport=httpx.MockTransport(handler))
    client.enabled = True
    client.api_key = "key"

    response = await client.send_campaign("Top_Perfomer_API", "919876543210", ["Asha", "1"])

    assert response == {"status": "ok", "provider_response": {"success": True}}
    body = captured["body"]
    assert body["apiKey"] == "key"
    assert body["campaignName"] == "Top_Perfomer_API"
    assert body["destination"] == "919876543210"
    assert body["templateParams"] == ["Asha", "1"]
    assert body["paramsFallbackValue"] == {"FirstName": "user"}


async def test_send_campaign_reports_provider_error():
    client = WhatsAppClient(transport=httpx.MockTransport(lambda request: httpx.Response(500, text="boom")))
    client.enabled = True
    client.api_key = "key"

    response = await client.send_campaign("Bottom_Performer", "919876543210", [])

    assert response["status"] == "error"
    assert response["code"] == 500


async def test_disabled_client_does_not_send():
    client = WhatsAppClient(transport=httpx.MockTransport(lambda request: pytest.fail("no request expected")))
    client.enabled = False

    response = await client.send_campaign("Bottom_Performer", "919876543210", [])

    assert response["status"] == "disabled"
