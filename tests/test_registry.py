"""Tests for registry lookups."""

import asyncio

import httpx
import pytest

from depdoctor.registry import ACCEPT_HEADER, NpmRegistryClient, PackageInfo, StaticRegistry

PACKUMENT = {
    "name": "left-pad",
    "versions": {
        "1.0.0": {"dependencies": {"a": "^1.0.0"}, "dist": {"unpackedSize": 1234}},
        "1.1.0": {"peerDependencies": {"react": "^18.0.0"}, "dist": {}},
        "broken": "not an object",
    },
}


def make_client(handler, timeout: float = 5.0) -> NpmRegistryClient:
    """Client whose HTTP traffic goes to ``handler``."""
    http = httpx.AsyncClient(
        transport=httpx.MockTransport(handler),
        headers={"Accept": ACCEPT_HEADER},
    )
    return NpmRegistryClient("https://registry.test/", timeout=timeout, client=http)


class TestPackageInfo:
    """Tests for PackageInfo.from_document."""

    def test_reads_versions(self) -> None:
        """Should read dependencies, peers and unpacked size per version."""
        info = PackageInfo.from_document("left-pad", PACKUMENT)

        assert sorted(info.versions) == ["1.0.0", "1.1.0"]
        assert info.versions["1.0.0"].dependencies == {"a": "^1.0.0"}
        assert info.versions["1.0.0"].unpacked_size == 1234
        assert info.versions["1.1.0"].peer_dependencies == {"react": "^18.0.0"}
        assert info.versions["1.1.0"].unpacked_size is None

    def test_missing_versions(self) -> None:
        """A document without versions yields an empty PackageInfo."""
        info = PackageInfo.from_document("ghost", {})

        assert info.name == "ghost"
        assert info.versions == {}


class TestStaticRegistry:
    """Tests for StaticRegistry."""

    @pytest.mark.asyncio
    async def test_lookup(self) -> None:
        """Known names return PackageInfo, unknown names None."""
        registry = StaticRegistry({"left-pad": PACKUMENT})

        assert (await registry.get_package_info("left-pad")).name == "left-pad"
        assert await registry.get_package_info("right-pad") is None


class TestNpmRegistryClient:
    """Tests for NpmRegistryClient."""

    def test_scoped_url(self) -> None:
        """Scoped names should encode the slash but keep the @."""
        client = NpmRegistryClient("https://registry.test/")

        assert client.package_url("@types/node") == "https://registry.test/@types%2Fnode"
        assert client.package_url("left-pad") == "https://registry.test/left-pad"

    @pytest.mark.asyncio
    async def test_fetches_and_caches(self) -> None:
        """A package should be fetched once per client."""
        calls: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(str(request.url))
            return httpx.Response(200, json=PACKUMENT)

        async with make_client(handler) as client:
            first = await client.get_package_info("left-pad")
            second = await client.get_package_info("left-pad")

        assert first is not None
        assert first == second
        assert calls == ["https://registry.test/left-pad"]

    @pytest.mark.asyncio
    async def test_concurrent_lookups_share_fetch(self) -> None:
        """Concurrent lookups of one name should share a single request."""
        calls: list[str] = []

        async def handler(request: httpx.Request) -> httpx.Response:
            calls.append(str(request.url))
            await asyncio.sleep(0.01)
            return httpx.Response(200, json=PACKUMENT)

        async with make_client(handler) as client:
            results = await asyncio.gather(
                *(client.get_package_info("left-pad") for _ in range(5))
            )

        assert len(calls) == 1
        assert all(r is not None for r in results)

    @pytest.mark.asyncio
    async def test_not_found(self) -> None:
        """404 should yield None."""
        async with make_client(lambda request: httpx.Response(404)) as client:
            assert await client.get_package_info("missing") is None

    @pytest.mark.asyncio
    async def test_server_error(self) -> None:
        """5xx should yield None."""
        async with make_client(lambda request: httpx.Response(503)) as client:
            assert await client.get_package_info("left-pad") is None

    @pytest.mark.asyncio
    async def test_invalid_json(self) -> None:
        """A non-JSON body should yield None."""
        async with make_client(lambda request: httpx.Response(200, text="<html>")) as client:
            assert await client.get_package_info("left-pad") is None

    @pytest.mark.asyncio
    async def test_non_object_document(self) -> None:
        """A JSON body that is not an object should yield None."""
        async with make_client(lambda request: httpx.Response(200, json=[1, 2])) as client:
            assert await client.get_package_info("left-pad") is None

    @pytest.mark.asyncio
    async def test_transport_error(self) -> None:
        """Connection failures should yield None."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        async with make_client(handler) as client:
            assert await client.get_package_info("left-pad") is None

    @pytest.mark.asyncio
    async def test_timeout(self) -> None:
        """A fetch slower than the timeout should yield None."""

        async def handler(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(5)
            return httpx.Response(200, json=PACKUMENT)

        async with make_client(handler, timeout=0.05) as client:
            assert await client.get_package_info("left-pad") is None
