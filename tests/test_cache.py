import asyncio
import json

import httpx
import pytest

from stackzy.core.cache import ResultCache
from stackzy.exceptions import TransportError
from stackzy.models.report import CachedResult, PackageFingerprint

FINGERPRINT = PackageFingerprint(
    package_name="com.example.app", version_code=42, analyzer_version="1.0"
)

CACHED = {
    "app_name": "Example",
    "package_name": "com.example.app",
    "platform": "NativeKotlin",
    "lib_packages": "com.squareup.okhttp,com.google.firebase",
    "permissions": "android.permission.INTERNET",
    "apk_size_in_mb": 1.5,
    "gradle_info_json": '{"version_name": "1.2.3", "version_code": 42}',
    "version_code": 42,
    "stackzy_lib_version": "1.0",
}


def _cache(handler) -> ResultCache:
    return ResultCache(
        "https://results.test", api_key="secret", transport=httpx.MockTransport(handler)
    )


def test_lookup_returns_cached_result():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["params"] = dict(request.url.params)
        seen["key"] = request.headers.get("x-api-key")
        return httpx.Response(200, json={"data": CACHED})

    result = asyncio.run(_cache(handler).lookup(FINGERPRINT))

    assert result.lib_packages == "com.squareup.okhttp,com.google.firebase"
    assert seen["params"] == {
        "package_name": "com.example.app",
        "version_code": "42",
        "stackzy_lib_version": "1.0",
    }
    assert seen["key"] == "secret"


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(404, json={"error": "No data found"}),
        httpx.Response(200, json={"error": "No data found"}),
        httpx.Response(404, text="No data found"),
        httpx.Response(200, json=[]),
        httpx.Response(200, text="No data found"),
        httpx.Response(200, json={"message": "No data found"}),
        httpx.Response(200, json="No data found"),
    ],
)
def test_lookup_not_found_sentinel(response):
    result = asyncio.run(_cache(lambda request: response).lookup(FINGERPRINT))

    assert result is None


def test_lookup_other_error_is_transport_error():
    def handler(request):
        return httpx.Response(500, json={"message": "Sheet quota exceeded"})

    with pytest.raises(TransportError, match="Sheet quota exceeded"):
        asyncio.run(_cache(handler).lookup(FINGERPRINT))


def test_lookup_network_failure_is_transport_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(TransportError, match="connection refused"):
        asyncio.run(_cache(handler).lookup(FINGERPRINT))


def test_lookup_error_in_success_body_is_transport_error():
    def handler(request):
        return httpx.Response(200, json={"error": "Sheet quota exceeded"})

    with pytest.raises(TransportError, match="Sheet quota exceeded"):
        asyncio.run(_cache(handler).lookup(FINGERPRINT))


def test_lookup_malformed_payload_is_transport_error():
    with pytest.raises(TransportError, match="Malformed"):
        asyncio.run(
            _cache(lambda request: httpx.Response(200, json={"app_name": "x"})).lookup(
                FINGERPRINT
            )
        )


def test_store_posts_flattened_result():
    bodies = []

    def handler(request):
        bodies.append(json.loads(request.content))
        return httpx.Response(201, json={"data": "ok"})

    asyncio.run(_cache(handler).store(CachedResult.model_validate(CACHED)))

    assert bodies[0]["lib_packages"] == "com.squareup.okhttp,com.google.firebase"
    assert bodies[0]["version_code"] == 42


def test_store_failure_raises():
    def handler(request):
        return httpx.Response(503, text="unavailable")

    with pytest.raises(TransportError, match="unavailable"):
        asyncio.run(_cache(handler).store(CachedResult.model_validate(CACHED)))
