"""Tests for feed subscription endpoints and on-demand refresh."""

import uuid

import httpx
import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from hostcal.models.property import Property

pytestmark = pytest.mark.asyncio(loop_scope="session")

_URL = "/api/v1/feeds"
_CALENDAR = "/api/v1/calendar"
_MARCH = {"start": "2024-03-01", "end": "2024-04-01"}

AIRBNB_ICS = "\r\n".join(
    [
        "BEGIN:VCALENDAR",
        "VERSION:2.0",
        "PRODID:-//Airbnb Inc//Hosting Calendar 0.8.8//EN",
        "BEGIN:VEVENT",
        "UID:1418fb94e984-airbnb-1",
        "DTSTART;VALUE=DATE:20240312",
        "DTEND;VALUE=DATE:20240314",
        "SUMMARY:Reserved",
        "END:VEVENT",
        "BEGIN:VEVENT",
        "UID:1418fb94e984-airbnb-2",
        "DTSTART;VALUE=DATE:20240320",
        "DTEND;VALUE=DATE:20240325",
        "SUMMARY:Airbnb (Not available)",
        "END:VEVENT",
        "END:VCALENDAR",
        "",
    ]
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def _create_feed(
    client: AsyncClient,
    headers: dict,
    prop: Property,
    url: str = "https://www.airbnb.com/calendar/ical/1.ics",
    channel: str = "airbnb",
    **extra,
) -> dict:
    response = await client.post(
        _URL,
        json={"property_id": str(prop.id), "url": url, "channel": channel, **extra},
        headers=headers,
    )
    assert response.status_code == 201, response.text
    return response.json()


# ---------------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------------


class TestFeedCrud:
    async def test_create_normalizes_url_and_channel(
        self,
        client: AsyncClient,
        auth_headers: dict,
        test_property: Property,
    ) -> None:
        data = await _create_feed(
            client,
            auth_headers,
            test_property,
            url="webcal://www.vrbo.com/icalendar/abc.ics",
            channel="HomeAway",
        )
        assert data["url"] == "https://www.vrbo.com/icalendar/abc.ics"
        assert data["channel"] == "vrbo"
        assert data["is_active"] is True
        assert data["last_sync_status"] == "never"
        assert data["last_sync_at"] is None

    async def test_create_rejects_non_http_url(
        self,
        client: AsyncClient,
        auth_headers: dict,
        test_property: Property,
    ) -> None:
        response = await client.post(
            _URL,
            json={"property_id": str(test_property.id), "url": "ftp://example.com/cal.ics"},
            headers=auth_headers,
        )
        assert response.status_code == 422

    async def test_create_for_unowned_property(
        self,
        client: AsyncClient,
        auth_headers: dict,
        db_session: AsyncSession,
        make_host,
    ) -> None:
        stranger = await make_host("Stranger")
        foreign = Property(owner_id=stranger.id, name="Not Yours")
        db_session.add(foreign)
        await db_session.flush()

        response = await client.post(
            _URL,
            json={"property_id": str(foreign.id), "url": "https://example.com/cal.ics"},
            headers=auth_headers,
        )
        assert response.status_code == 404

    async def test_list_and_filter(
        self,
        client: AsyncClient,
        auth_headers: dict,
        test_property: Property,
        other_property: Property,
    ) -> None:
        await _create_feed(client, auth_headers, test_property)
        await _create_feed(client, auth_headers, other_property, url="https://example.com/b.ics", channel="booking")

        response = await client.get(_URL, headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["total"] == 2

        response = await client.get(_URL, params={"property_id": str(other_property.id)}, headers=auth_headers)
        items = response.json()["items"]
        assert [i["channel"] for i in items] == ["booking.com"]

    async def test_update(self, client: AsyncClient, auth_headers: dict, test_property: Property) -> None:
        feed = await _create_feed(client, auth_headers, test_property)
        response = await client.patch(f"{_URL}/{feed['id']}", json={"is_active": False}, headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["is_active"] is False
        assert response.json()["url"] == feed["url"]

    async def test_delete(self, client: AsyncClient, auth_headers: dict, test_property: Property) -> None:
        feed = await _create_feed(client, auth_headers, test_property)

        response = await client.delete(f"{_URL}/{feed['id']}", headers=auth_headers)
        assert response.status_code == 200

        response = await client.delete(f"{_URL}/{feed['id']}", headers=auth_headers)
        assert response.status_code == 404

    async def test_unknown_feed(self, client: AsyncClient, auth_headers: dict) -> None:
        response = await client.patch(f"{_URL}/{uuid.uuid4()}", json={"is_active": False}, headers=auth_headers)
        assert response.status_code == 404


# ---------------------------------------------------------------------------
# Refresh
# ---------------------------------------------------------------------------


class TestRefresh:
    async def test_refresh_stores_events(
        self,
        client: AsyncClient,
        auth_headers: dict,
        test_property: Property,
        feed_payloads: dict,
    ) -> None:
        feed = await _create_feed(client, auth_headers, test_property)
        feed_payloads[feed["url"]] = AIRBNB_ICS

        response = await client.post(f"{_URL}/{feed['id']}/refresh", headers=auth_headers)
        assert response.status_code == 200
        result = response.json()
        assert result["ok"] is True
        assert result["event_count"] == 2

        calendar = (await client.get(_CALENDAR, params=_MARCH, headers=auth_headers)).json()
        events = calendar["intervals"]
        assert [e["source_kind"] for e in events] == ["external_event", "external_event"]
        assert {e["channel"] for e in events} == {"airbnb"}
        assert all(e["limited_detail"] for e in events)
        assert calendar["statistics"]["booked_nights"] == 7

        listed = (await client.get(_URL, headers=auth_headers)).json()["items"][0]
        assert listed["last_sync_status"] == "ok"
        assert listed["last_event_count"] == 2

    async def test_refresh_twice_is_idempotent(
        self,
        client: AsyncClient,
        auth_headers: dict,
        test_property: Property,
        feed_payloads: dict,
    ) -> None:
        feed = await _create_feed(client, auth_headers, test_property)
        feed_payloads[feed["url"]] = AIRBNB_ICS

        await client.post(f"{_URL}/{feed['id']}/refresh", headers=auth_headers)
        first = (await client.get(_CALENDAR, params=_MARCH, headers=auth_headers)).json()
        await client.post(f"{_URL}/{feed['id']}/refresh", headers=auth_headers)
        second = (await client.get(_CALENDAR, params=_MARCH, headers=auth_headers)).json()

        assert first["intervals"] == second["intervals"]
        assert first["statistics"] == second["statistics"]

    async def test_failed_refresh_keeps_previous_events(
        self,
        client: AsyncClient,
        auth_headers: dict,
        test_property: Property,
        feed_payloads: dict,
    ) -> None:
        feed = await _create_feed(client, auth_headers, test_property)
        feed_payloads[feed["url"]] = AIRBNB_ICS
        await client.post(f"{_URL}/{feed['id']}/refresh", headers=auth_headers)

        feed_payloads[feed["url"]] = httpx.Response(503, text="maintenance")
        response = await client.post(f"{_URL}/{feed['id']}/refresh", headers=auth_headers)
        assert response.status_code == 200
        result = response.json()
        assert result["ok"] is False
        assert result["error"] == "HTTP 503 from feed"

        calendar = (await client.get(_CALENDAR, params=_MARCH, headers=auth_headers)).json()
        assert len(calendar["intervals"]) == 2

        listed = (await client.get(_URL, headers=auth_headers)).json()["items"][0]
        assert listed["last_sync_status"] == "error"
        assert listed["last_event_count"] == 2

    async def test_relabelled_feed_shows_new_channel_without_resync(
        self,
        client: AsyncClient,
        auth_headers: dict,
        test_property: Property,
        feed_payloads: dict,
    ) -> None:
        feed = await _create_feed(client, auth_headers, test_property, channel="other")
        feed_payloads[feed["url"]] = AIRBNB_ICS
        await client.post(f"{_URL}/{feed['id']}/refresh", headers=auth_headers)
        feed_payloads[feed["url"]] = httpx.Response(503, text="maintenance")

        response = await client.patch(f"{_URL}/{feed['id']}", json={"channel": "Airbnb"}, headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["channel"] == "airbnb"

        result = (await client.post(f"{_URL}/{feed['id']}/refresh", headers=auth_headers)).json()
        assert result["ok"] is False

        calendar = (await client.get(_CALENDAR, params=_MARCH, headers=auth_headers)).json()
        assert len(calendar["intervals"]) == 2
        assert {e["channel"] for e in calendar["intervals"]} == {"airbnb"}

    async def test_refresh_all_isolates_failures(
        self,
        client: AsyncClient,
        auth_headers: dict,
        test_property: Property,
        other_property: Property,
        feed_payloads: dict,
    ) -> None:
        good = await _create_feed(client, auth_headers, test_property)
        down = await _create_feed(client, auth_headers, other_property, url="https://example.com/down.ics")
        await _create_feed(
            client,
            auth_headers,
            other_property,
            url="https://example.com/paused.ics",
            is_active=False,
        )
        feed_payloads[good["url"]] = AIRBNB_ICS
        feed_payloads[down["url"]] = httpx.ConnectError("connection refused")

        response = await client.post(f"{_URL}/refresh", headers=auth_headers)
        assert response.status_code == 200
        data = response.json()
        assert (data["succeeded"], data["failed"], data["skipped"]) == (1, 1, 1)
        assert len(data["results"]) == 3

    async def test_refresh_one_property(
        self,
        client: AsyncClient,
        auth_headers: dict,
        test_property: Property,
        other_property: Property,
        feed_payloads: dict,
    ) -> None:
        feed = await _create_feed(client, auth_headers, test_property)
        await _create_feed(client, auth_headers, other_property, url="https://example.com/other.ics")
        feed_payloads[feed["url"]] = AIRBNB_ICS

        response = await client.post(
            f"{_URL}/refresh",
            params={"property_id": str(test_property.id)},
            headers=auth_headers,
        )
        results = response.json()["results"]
        assert [r["feed_id"] for r in results] == [feed["id"]]
