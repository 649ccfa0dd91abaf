import json

import httpx
import pytest

from checklist_sync.document import ChecklistKind
from checklist_sync.errors import NotifierError
from checklist_sync.models import NotifierConfig
from checklist_sync.notifier import ArchivedPhoto, WorkflowNotifier

CONFIG = NotifierConfig(
    photos_webhook_url="https://hooks.test/photos",
    finalize_webhook_url="https://hooks.test/finalize",
)


async def test_photo_batch_is_posted_as_json():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200)

    photos = [ArchivedPhoto(url="https://cdn.test/a.jpg", filename="a.jpg")]
    async with WorkflowNotifier(CONFIG, transport=httpx.MockTransport(handler)) as notifier:
        assert await notifier.notify_photos("prop-1", ChecklistKind.FINAL, photos) is True

    (request,) = seen
    assert request.url == "https://hooks.test/photos"
    assert json.loads(request.content) == {
        "property_id": "prop-1",
        "checklist_type": "final",
        "images": [{"url": "https://cdn.test/a.jpg", "filename": "a.jpg"}],
    }


async def test_nothing_is_sent_without_url_or_photos():
    def handler(request):
        raise AssertionError("no request expected")

    transport = httpx.MockTransport(handler)
    async with WorkflowNotifier(NotifierConfig(), transport=transport) as notifier:
        assert await notifier.notify_finalized({"property_id": "p"}) is False
    async with WorkflowNotifier(CONFIG, transport=transport) as notifier:
        assert await notifier.notify_photos("p", ChecklistKind.INITIAL, []) is False


async def test_rejected_webhook_raises_with_status():
    def handler(request):
        return httpx.Response(500)

    async with WorkflowNotifier(CONFIG, transport=httpx.MockTransport(handler)) as notifier:
        with pytest.raises(NotifierError) as excinfo:
            await notifier.notify_finalized({"property_id": "p"})

    assert excinfo.value.status_code == 500


async def test_unreachable_webhook_raises():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    async with WorkflowNotifier(CONFIG, transport=httpx.MockTransport(handler)) as notifier:
        with pytest.raises(NotifierError, match="unreachable"):
            await notifier.notify_finalized({"property_id": "p"})
