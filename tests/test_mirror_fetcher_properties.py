"""
Property-based tests for the mirror fetcher.

Mirrors are faked as distinct hosts behind one httpx.MockTransport.
"""

import asyncio
from urllib.parse import unquote

import httpx
import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from domain_intel.config import DEFAULT_MIRRORS
from domain_intel.exceptions import MirrorFetchError, ProviderTimeoutError, UpstreamError
from domain_intel.mirror_fetcher import MirrorFetcher, build_mirror_url, fetch_via_mirrors
from domain_intel.provider_gateway import ProviderGateway


TARGET = "https://example.com"


def mirror_templates(count: int) -> list[str]:
    return [f"https://mirror{index}.test/raw?url={{url}}" for index in range(count)]


class FakeMirrors:
    """Each mirror host answers with a preset outcome: a status code, 'timeout' or 'refused'."""

    def __init__(self, outcomes: list) -> None:
        self.outcomes = outcomes
        self.contacted: list[int] = []

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        index = int(request.url.host.split(".")[0].replace("mirror", ""))
        self.contacted.append(index)
        outcome = self.outcomes[index]
        if outcome == "timeout":
            await asyncio.sleep(1.0)
            return httpx.Response(200, text="too late")
        if outcome == "refused":
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(outcome, text=f"<html>mirror {index}</html>")


def fetch(outcomes: list, per_attempt_timeout: float = 0.05) -> tuple[FakeMirrors, object]:
    mirrors = FakeMirrors(outcomes)

    async def run():
        async with ProviderGateway(transport=httpx.MockTransport(mirrors)) as gateway:
            fetcher = MirrorFetcher(gateway, mirror_templates(len(outcomes)), per_attempt_timeout)
            try:
                return await fetcher.fetch(TARGET)
            except MirrorFetchError as e:
                return e

    return mirrors, asyncio.run(run())


failure = st.sampled_from([404, 500, 502, 503, "timeout", "refused"])


class TestFirstSuccessWinsProperty:
    """The first 2xx mirror wins and later mirrors are never contacted."""

    @given(
        failures=st.lists(failure, max_size=3),
        tail=st.lists(st.sampled_from([200, 500, "timeout"]), max_size=3),
    )
    @settings(max_examples=30, deadline=None)
    def test_first_2xx_wins(self, failures: list, tail: list) -> None:
        outcomes = failures + [200] + tail
        mirrors, result = fetch(outcomes)

        winner = len(failures)
        assert result == f"<html>mirror {winner}</html>"
        assert mirrors.contacted == list(range(winner + 1))

    @given(failures=st.lists(failure, min_size=1, max_size=4))
    @settings(max_examples=30, deadline=None)
    def test_all_failing_raises_last_transport_error(self, failures: list) -> None:
        mirrors, result = fetch(failures)

        assert isinstance(result, MirrorFetchError)
        assert result.attempts == len(failures)
        assert mirrors.contacted == list(range(len(failures)))
        transport_failures = [f for f in failures if f in ("timeout", "refused")]
        if not transport_failures:
            assert result.last_error is None
            assert result.message == "All mirrors failed"
        elif transport_failures[-1] == "timeout":
            assert result.is_timeout
            assert isinstance(result.last_error, ProviderTimeoutError)
        else:
            assert not result.is_timeout
            assert isinstance(result.last_error, UpstreamError)

    def test_http_error_after_timeout_keeps_timeout(self) -> None:
        _, result = fetch(["timeout", 500])

        assert result.is_timeout
        assert result.message == result.last_error.message
        assert "500" not in result.message

    def test_http_error_after_network_error_keeps_network_error(self) -> None:
        _, result = fetch(["refused", 503, 404])

        assert not result.is_timeout
        assert isinstance(result.last_error, UpstreamError)
        assert result.last_error.code == "network_error"


class TestMirrorChain:
    def test_empty_mirror_list(self) -> None:
        async def run():
            async with ProviderGateway(transport=httpx.MockTransport(FakeMirrors([]))) as gateway:
                return await fetch_via_mirrors(gateway, TARGET, [], 0.05)

        with pytest.raises(MirrorFetchError) as excinfo:
            asyncio.run(run())
        assert excinfo.value.message == "All mirrors failed"
        assert excinfo.value.last_error is None

    def test_target_is_url_encoded_into_template(self) -> None:
        url = build_mirror_url(DEFAULT_MIRRORS[0], "https://example.com/a?b=c")
        assert url == "https://api.allorigins.win/raw?url=https%3A%2F%2Fexample.com%2Fa%3Fb%3Dc"

    def test_default_mirrors_receive_target(self) -> None:
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(str(request.url))
            return httpx.Response(503)

        async def run():
            async with ProviderGateway(transport=httpx.MockTransport(handler)) as gateway:
                return await fetch_via_mirrors(gateway, TARGET, DEFAULT_MIRRORS, 0.5)

        with pytest.raises(MirrorFetchError):
            asyncio.run(run())

        assert len(seen) == 3
        assert [u.split("/")[2] for u in seen] == ["api.allorigins.win", "corsproxy.io", "api.codetabs.com"]
        assert all(TARGET in unquote(u) for u in seen)
