from datetime import datetime

import pytest

from tests.helpers.booking import reserve
from tests.helpers.clock import MONDAY, NEXT_MONDAY, ny_local

URL = "/api/v1/availability"


def _instant(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


@pytest.mark.usefixtures("monday_hours")
class TestAvailabilityRoute:
    def _params(self, tenant, service, **extra):
        params = {
            "tenant_id": tenant.id,
            "service_id": service.id,
            "from": MONDAY.isoformat(),
            "to": MONDAY.isoformat(),
        }
        params.update(extra)
        return params

    def test_lists_slots(self, api_client, booking_manager, tenant, service, staff, client_user) -> None:
        reserve(booking_manager, tenant, service, client_user, ny_local(MONDAY, 9, 30), staff)

        response = api_client.get(URL, params=self._params(tenant, service, staff_id=staff.id))

        assert response.status_code == 200
        body = response.json()
        assert body["timezone"] == "America/New_York"
        assert [(_instant(s["start_utc"]), s["available"]) for s in body["slots"]] == [
            (ny_local(MONDAY, 9, 0), False),
            (ny_local(MONDAY, 9, 30), False),
            (ny_local(MONDAY, 10, 0), False),
            (ny_local(MONDAY, 10, 30), True),
        ]

    def test_inverted_range(self, api_client, tenant, service) -> None:
        response = api_client.get(
            URL,
            params=self._params(tenant, service, **{"from": NEXT_MONDAY.isoformat()}),
        )

        assert response.status_code == 422
        assert response.headers["content-type"].startswith("application/problem+json")
        assert response.json()["code"] == "INVALID_DATE_RANGE"

    def test_unknown_tenant(self, api_client, tenant, service) -> None:
        params = self._params(tenant, service)
        params["tenant_id"] = "01HZZZZZZZZZZZZZZZZZZZZZZZ"

        response = api_client.get(URL, params=params)

        assert response.status_code == 404
        assert response.json()["code"] == "TENANT_NOT_FOUND"

    def test_missing_dates(self, api_client, tenant, service) -> None:
        response = api_client.get(URL, params={"tenant_id": tenant.id, "service_id": service.id})

        assert response.status_code == 422
        assert response.json()["code"] == "validation_error"
