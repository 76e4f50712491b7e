# tests/integration/test_fees_api.py

from decimal import Decimal


def _quote(client, event, package):
    response = client.get(f"/events/{event.id}/fees", params={"package_id": package.id})
    assert response.status_code == 200
    (quote,) = response.json()["packages"]
    return quote


# ---------------------
# PLATFORM SETTINGS
# ---------------------

def test_settings_are_seeded_with_defaults(client, admin_headers):
    response = client.get("/settings/fees", headers=admin_headers)

    assert response.status_code == 200
    settings = {item["key"]: item for item in response.json()}
    assert {key: Decimal(item["value"]) for key, item in settings.items()} == {
        "cgst_percentage": Decimal("9"),
        "host_fee_percentage": Decimal("6"),
        "platform_fee_percentage": Decimal("10"),
        "sgst_percentage": Decimal("9"),
        "user_fee_percentage": Decimal("5"),
    }
    assert settings["cgst_percentage"]["displayName"] == "CGST (%)"


def test_settings_require_admin(client, host_headers):
    response = client.get("/settings/fees", headers=host_headers)

    assert response.status_code == 403


def test_update_changes_quoted_prices(client, admin_headers, event, regular_package):
    response = client.put(
        "/settings/fees",
        json={"settings": {"user_fee_percentage": 7.5}},
        headers=admin_headers,
    )

    assert response.status_code == 200
    updated = {item["key"]: item["value"] for item in response.json()}
    assert updated["user_fee_percentage"] == "7.5"

    assert Decimal(_quote(client, event, regular_package)["ticket_price"]) == Decimal("125.50")


def test_out_of_range_value_is_rejected(client, admin_headers):
    response = client.put(
        "/settings/fees",
        json={"settings": {"cgst_percentage": 150}},
        headers=admin_headers,
    )

    assert response.status_code == 400
    assert response.json() == {
        "error": "Invalid percentage value for cgst_percentage: Must be between 0 and 100"
    }


def test_rejected_update_writes_nothing(client, admin_headers):
    response = client.put(
        "/settings/fees",
        json={"settings": {"sgst_percentage": 4, "cgst_percentage": "abc"}},
        headers=admin_headers,
    )
    assert response.status_code == 400

    settings = {item["key"]: item["value"] for item in client.get("/settings/fees", headers=admin_headers).json()}
    assert Decimal(settings["sgst_percentage"]) == Decimal("9")


def test_unknown_setting_is_rejected(client, admin_headers):
    response = client.put(
        "/settings/fees",
        json={"settings": {"convenience_fee": 2}},
        headers=admin_headers,
    )

    assert response.status_code == 400
    assert response.json() == {"error": "Unknown fee setting: convenience_fee"}


# ---------------------
# HOST OVERRIDE
# ---------------------

def test_host_fee_override(client, admin_headers, host, event, regular_package):
    response = client.put(f"/hosts/{host.id}/fee", json={"host_fee_percentage": 10}, headers=admin_headers)

    assert response.status_code == 200
    assert Decimal(response.json()["host_fee_percentage"]) == Decimal("10")

    quote = _quote(client, event, regular_package)
    assert Decimal(quote["host_fee_amount"]) == Decimal("10.00")
    assert Decimal(quote["admin_gets"]) == Decimal("15.00")


def test_host_fee_override_can_be_cleared(client, admin_headers, host, event, regular_package):
    client.put(f"/hosts/{host.id}/fee", json={"host_fee_percentage": 10}, headers=admin_headers)

    response = client.put(f"/hosts/{host.id}/fee", json={"host_fee_percentage": None}, headers=admin_headers)

    assert response.status_code == 200
    assert response.json()["host_fee_percentage"] is None
    assert Decimal(_quote(client, event, regular_package)["host_fee_amount"]) == Decimal("6.00")


def test_host_fee_override_is_range_checked(client, admin_headers, host):
    response = client.put(f"/hosts/{host.id}/fee", json={"host_fee_percentage": 101}, headers=admin_headers)

    assert response.status_code == 400
    assert response.json() == {"error": "Invalid request payload"}


def test_host_fee_override_for_non_host(client, admin_headers, buyer):
    response = client.put(f"/hosts/{buyer.id}/fee", json={"host_fee_percentage": 3}, headers=admin_headers)

    assert response.status_code == 400


def test_host_fee_override_for_unknown_host(client, admin_headers):
    response = client.put("/hosts/missing/fee", json={"host_fee_percentage": 3}, headers=admin_headers)

    assert response.status_code == 404
    assert response.json() == {"error": "Host not found"}


# ---------------------
# EVENT QUOTES
# ---------------------

def test_event_quote_breaks_down_each_package(client, event, regular_package, vip_package):
    response = client.get(f"/events/{event.id}/fees")

    assert response.status_code == 200
    body = response.json()
    assert body["event_id"] == event.id
    assert Decimal(body["percentages"]["referral"]) == Decimal("10")

    quotes = {quote["package_id"]: quote for quote in body["packages"]}
    regular = quotes[regular_package.id]
    assert regular["package_name"] == "Regular"
    assert Decimal(regular["ticket_price"]) == Decimal("123.00")
    assert Decimal(regular["total_tax"]) == Decimal("18.00")
    assert Decimal(regular["referral_amount"]) == Decimal("9.40")
    assert Decimal(regular["host_gets"]) == Decimal("84.60")
    assert Decimal(regular["admin_gets"]) == Decimal("11.00")
    assert Decimal(quotes[vip_package.id]["ticket_price"]) == Decimal("246.00")


def test_event_quote_for_unknown_event(client):
    response = client.get("/events/missing/fees")

    assert response.status_code == 404
    assert response.json() == {"error": "Event not found"}
