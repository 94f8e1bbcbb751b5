import json

from gh_updater.core.security import sign_payload
from gh_updater.schemas.apps import App, AppStatus
from gh_updater.schemas.webhooks import EventKind

APPS = [
    App(id="app-1", name="One", app_id=1, installation_id=11, webhook_secret="secret-one", status=AppStatus.INSTALLED),
    App(id="app-2", name="Two", app_id=2, installation_id=22, webhook_secret="secret-two", status=AppStatus.INSTALLED),
]


class FakeAppList:
    async def list_apps(self):
        return APPS


def _deliver(client, event: str, payload: dict, secret: str | None = "secret-two", **headers):
    body = json.dumps(payload).encode()
    request_headers = {"X-GitHub-Event": event, "X-GitHub-Delivery": "delivery-1", "Content-Type": "application/json"}
    if secret is not None:
        request_headers["X-Hub-Signature-256"] = sign_payload(body, secret)
    request_headers.update(headers)
    return client.post("/webhooks/github", content=body, headers=request_headers)


def test_release_published_is_attributed_by_signature_and_queued(client_for, channel) -> None:
    client = client_for(FakeAppList())

    response = _deliver(
        client,
        "release",
        {"action": "published", "repository": {"full_name": "Acme/Widget"}},
    )

    assert response.status_code == 202
    assert response.json()["status"] == "accepted"
    assert response.json()["correlation_id"] == "delivery-1"
    [event] = channel.events
    assert event.kind == EventKind.RELEASE_PUBLISHED
    assert event.app_id == "app-2"
    assert event.repo == "acme/widget"


def test_installation_created_carries_installation_id(client_for, channel) -> None:
    response = _deliver(
        client_for(FakeAppList()),
        "installation",
        {"action": "created", "installation": {"id": 909}},
        secret="secret-one",
    )

    assert response.status_code == 202
    assert channel.events[0].installation_id == 909
    assert channel.events[0].app_id == "app-1"


def test_unknown_signature_is_rejected(client_for, channel) -> None:
    response = _deliver(client_for(FakeAppList()), "ping", {"zen": "hi"}, secret="wrong")

    assert response.status_code == 401
    assert channel.events == []


def test_missing_signature_is_rejected(client_for, channel) -> None:
    response = _deliver(client_for(FakeAppList()), "ping", {"zen": "hi"}, secret=None)

    assert response.status_code == 401


def test_missing_event_header_is_bad_request(client_for) -> None:
    body = b"{}"
    response = client_for(FakeAppList()).post(
        "/webhooks/github",
        content=body,
        headers={"X-Hub-Signature-256": sign_payload(body, "secret-one")},
    )

    assert response.status_code == 400


def test_invalid_json_is_bad_request(client_for) -> None:
    body = b"not json"
    response = client_for(FakeAppList()).post(
        "/webhooks/github",
        content=body,
        headers={"X-GitHub-Event": "release", "X-Hub-Signature-256": sign_payload(body, "secret-one")},
    )

    assert response.status_code == 400


def test_unhandled_events_are_ignored(client_for, channel) -> None:
    response = _deliver(client_for(FakeAppList()), "push", {"ref": "refs/heads/main"})

    assert response.status_code == 200
    assert response.json()["status"] == "ignored"
    assert channel.events == []
