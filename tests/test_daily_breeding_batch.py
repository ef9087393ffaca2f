"""Tests for the nightly breeding batch script."""

from unittest.mock import MagicMock

import requests

from breeding_backend import daily_breeding_batch


def page(processed, updated=0, errors=None):
    response = MagicMock()
    response.json.return_value = {
        "processedCount": processed,
        "updatedCount": updated,
        "errors": errors or [],
    }
    return response


class TestRunDailyBreedingBatch:
    def test_pages_until_short_page(self):
        session = MagicMock()
        session.post.side_effect = [
            page(2, 2),
            page(2, 1, [{"cattleId": 4, "error": "Breeding aggregate not found"}]),
            page(1, 1),
        ]

        assert daily_breeding_batch.run_daily_breeding_batch(limit=2, session=session) is True

        offsets = [call.kwargs["params"]["offset"] for call in session.post.call_args_list]
        assert offsets == [0, 2, 4]
        assert session.post.call_args.kwargs["params"]["force"] == "false"
        assert "X-Admin-Secret" in session.post.call_args.kwargs["headers"]

    def test_force_flag_is_forwarded(self):
        session = MagicMock()
        session.post.return_value = page(0)

        assert daily_breeding_batch.run_daily_breeding_batch(limit=100, force=True, session=session)
        assert session.post.call_args.kwargs["params"]["force"] == "true"

    def test_http_error_returns_false(self):
        failing = MagicMock()
        failing.raise_for_status.side_effect = requests.HTTPError("403 Client Error: Forbidden")
        session = MagicMock()
        session.post.return_value = failing

        assert daily_breeding_batch.run_daily_breeding_batch(limit=10, session=session) is False
