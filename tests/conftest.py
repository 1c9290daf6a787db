"""Shared fixtures: fake HTTP responses and company identities."""

import json
from unittest.mock import Mock

import pytest

from marketstep.entities import CompanyIdentity


def make_response(status_code=200, json_data=None, text=None):
    """Build a Mock shaped like requests.Response."""
    response = Mock()
    response.status_code = status_code
    response.ok = 200 <= status_code < 300
    if text is None:
        text = json.dumps(json_data) if json_data is not None else ""
    response.text = text
    response.content = text.encode("utf-8")
    if json_data is not None:
        response.json.return_value = json_data
    else:
        response.json.side_effect = ValueError("No JSON object could be decoded")
    return response


def make_session(*responses):
    """Mock session whose get() returns the given responses in order."""
    session = Mock()
    session.headers = {}
    if len(responses) == 1:
        session.get.return_value = responses[0]
    else:
        session.get.side_effect = list(responses)
    return session


@pytest.fixture
def apple():
    """Apple Inc. identity."""
    return CompanyIdentity(canonical_name="Apple Inc.", ticker="AAPL", registry_id="320193")


@pytest.fixture
def microsoft():
    """Microsoft identity."""
    return CompanyIdentity(canonical_name="Microsoft Corporation", ticker="MSFT", registry_id="789019")
