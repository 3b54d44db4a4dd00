import asyncio
import json

import httpx

from fuelwatch.services.notifier import AdminNotifier

SUBMISSION = {
    "id": "sub-1",
    "queue": "web",
    "station_name": "Mobil Ikoyi",
    "station_location": "Lagos",
    "petrol_price": 5200.0,
    "diesel_price": None,
    "kerosene_price": None,
    "submitted_by": "anonymous",
}


def test_notifier_posts_submission_summary() -> None:
    seen: list[dict] = []

    def _handler(request: httpx.Request) -> httpx.Response:
        seen.append(json.loads(request.content))
        return httpx.Response(204)

    async def _scenario() -> bool:
        async with httpx.AsyncClient(transport=httpx.MockTransport(_handler)) as client:
            notifier = AdminNotifier("https://hooks.example.com/fuel", client=client)
            return await notifier.notify_new_submission(SUBMISSION)

    assert asyncio.run(_scenario()) is True
    assert seen[0]["event"] == "submission_created"
    assert seen[0]["submission_id"] == "sub-1"
    assert seen[0]["petrol_price"] == 5200.0


def test_notifier_failure_is_reported_not_raised() -> None:
    def _handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500)

    async def _scenario() -> bool:
        async with httpx.AsyncClient(transport=httpx.MockTransport(_handler)) as client:
            notifier = AdminNotifier("https://hooks.example.com/fuel", client=client)
            return await notifier.notify_new_submission(SUBMISSION)

    assert asyncio.run(_scenario()) is False


def test_notifier_without_webhook_is_disabled() -> None:
    notifier = AdminNotifier(None)

    assert notifier.enabled is False
    assert asyncio.run(notifier.notify_new_submission(SUBMISSION)) is False
