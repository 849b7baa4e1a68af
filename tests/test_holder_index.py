"""
Test holder index response parsing and pagination.
"""

import pytest

from holder_rewards.core.exceptions import HolderIndexError
from holder_rewards.schemas.holders import TokenAccountPage
from holder_rewards.services.holder_index import HolderIndexClient

from .conftest import RecordingSleep


MINT = "So11111111111111111111111111111111111111112"


def account(owner, amount):
    return {"address": f"ata-{owner}", "owner": owner, "amount": amount, "decimals": 6}


def test_build_request_includes_cursor():
    client = HolderIndexClient("https://index.example", MINT, page_size=50)

    first = client.build_request()
    later = client.build_request("abc")

    assert first["method"] == "getTokenAccounts"
    assert first["params"] == {"mint": MINT, "limit": 50}
    assert later["params"]["cursor"] == "abc"


def test_parse_response():
    page = HolderIndexClient.parse_response({
        "jsonrpc": "2.0",
        "id": "1",
        "result": {"token_accounts": [account("alice", 10)], "cursor": "next", "total": 1},
    })

    assert page.cursor == "next"
    assert page.accounts[0].owner == "alice"
    assert page.accounts[0].amount == 10


def test_parse_response_rpc_error():
    with pytest.raises(HolderIndexError) as exc_info:
        HolderIndexClient.parse_response({"error": {"code": -32600, "message": "rate limited"}})

    assert "rate limited" in exc_info.value.message
    assert exc_info.value.details == {"code": -32600}


def test_parse_response_malformed():
    with pytest.raises(HolderIndexError):
        HolderIndexClient.parse_response({"result": {"token_accounts": [{"owner": "alice"}]}})


def test_parse_response_without_result_is_empty():
    page = HolderIndexClient.parse_response({"jsonrpc": "2.0"})

    assert page.accounts == []
    assert page.cursor is None


class PagedClient(HolderIndexClient):
    def __init__(self, pages, **kwargs):
        super().__init__("https://index.example", MINT, **kwargs)
        self.pages = list(pages)
        self.cursors = []

    async def fetch_page(self, session, cursor=None):
        self.cursors.append(cursor)
        page = self.pages.pop(0)
        if isinstance(page, Exception):
            raise page
        return page


@pytest.mark.asyncio
async def test_fetch_all_follows_cursor():
    sleep = RecordingSleep()
    client = PagedClient(
        [
            TokenAccountPage(token_accounts=[account("a", 1), account("b", 2)], cursor="p2"),
            TokenAccountPage(token_accounts=[account("c", 3)], cursor=None),
        ],
        page_delay=0.25,
        sleep=sleep,
    )

    accounts = await client.fetch_all()

    assert [a.owner for a in accounts] == ["a", "b", "c"]
    assert client.cursors == [None, "p2"]
    assert sleep.calls == [0.25]


@pytest.mark.asyncio
async def test_fetch_all_stops_on_empty_page():
    client = PagedClient(
        [
            TokenAccountPage(token_accounts=[account("a", 1)], cursor="p2"),
            TokenAccountPage(token_accounts=[], cursor="p3"),
        ],
        sleep=RecordingSleep(),
    )

    accounts = await client.fetch_all()

    assert len(accounts) == 1
    assert client.cursors == [None, "p2"]


@pytest.mark.asyncio
async def test_fetch_all_is_all_or_nothing():
    client = PagedClient(
        [
            TokenAccountPage(token_accounts=[account("a", 1)], cursor="p2"),
            HolderIndexError("Holder index HTTP error: 502 Bad Gateway"),
        ],
        sleep=RecordingSleep(),
    )

    with pytest.raises(HolderIndexError):
        await client.fetch_all()
