"""Tests for NHTSA recall lookups."""

import httpx
from unittest.mock import MagicMock

from gear_diagnostics.collectors.recalls import RecallLookup

NHTSA_RESULTS = {
    "Count": 1,
    "results": [
        {
            "NHTSACampaignNumber": "18V123000",
            "ReportReceivedDate": "01/02/2018",
            "Component": "SERVICE BRAKES, HYDRAULIC",
            "Summary": "The brake master cylinder may leak.",
            "Consequence": "Increased stopping distance.",
            "Remedy": "Dealers will replace the master cylinder.",
            "Manufacturer": "Honda (American Honda Motor Co.)",
        }
    ],
}


def make_response(status, json=None):
    return httpx.Response(status, json=json,
                          request=httpx.Request("GET", RecallLookup.NHTSA_RECALLS_URL))


class TestRecallLookup:
    def test_lookup(self):
        client = MagicMock()
        client.get.return_value = make_response(200, NHTSA_RESULTS)
        lookup = RecallLookup(client=client)

        recalls = lookup.lookup("Honda", "Civic", 2018)

        assert len(recalls) == 1
        assert recalls[0].campaign_number == "18V123000"
        assert str(recalls[0]) == "18V123000: SERVICE BRAKES, HYDRAULIC"
        _, kwargs = client.get.call_args
        assert kwargs["params"] == {"make": "Honda", "model": "Civic", "modelYear": "2018"}

    def test_results_cached(self):
        client = MagicMock()
        client.get.return_value = make_response(200, NHTSA_RESULTS)
        lookup = RecallLookup(client=client)

        lookup.lookup("Honda", "Civic", 2018)
        lookup.lookup("HONDA", "civic", 2018)

        assert client.get.call_count == 1

    def test_missing_year_skips_lookup(self):
        client = MagicMock()
        lookup = RecallLookup(client=client)

        assert lookup.lookup("Honda", "Civic", None) == []
        client.get.assert_not_called()

    def test_failures_yield_empty_list(self):
        client = MagicMock()
        client.get.side_effect = httpx.ConnectError("offline")
        lookup = RecallLookup(client=client)

        assert lookup.lookup("Honda", "Civic", 2018) == []

    def test_http_error_not_cached(self):
        client = MagicMock()
        client.get.side_effect = [make_response(500), make_response(200, NHTSA_RESULTS)]
        lookup = RecallLookup(client=client)

        assert lookup.lookup("Honda", "Civic", 2018) == []
        assert len(lookup.lookup("Honda", "Civic", 2018)) == 1

    def test_non_object_body_yields_empty_list(self):
        client = MagicMock()
        client.get.side_effect = [make_response(200, NHTSA_RESULTS["results"]), make_response(200, NHTSA_RESULTS)]
        lookup = RecallLookup(client=client)

        assert lookup.lookup("Honda", "Civic", 2018) == []
        assert len(lookup.lookup("Honda", "Civic", 2018)) == 1
