"""End-to-end tests for POST /scrape, health and metrics.

The app is built by create_app() and its lifespan runs as normal; the
collaborators on app.state are then swapped for test doubles (fake auth,
fake DNS). Outbound target fetches are served by respx.
"""

import json

import httpx
import pytest
import respx
from fastapi.testclient import TestClient

from src.crawlers.recipe_scraper import RecipeScraper
from src.crawlers.safe_fetch import SafeFetcher
from src.lib.rate_limiter import SlidingWindowRateLimiter
from src.main import create_app

AUTH = {"Authorization": "Bearer good-token"}
TARGET = "https://example.com/lasagne"

RECIPE_HTML = (
    '<html><head><script type="application/ld+json">'
    + json.dumps({
        "@type": "Recipe",
        "name": "Lasagne",
        "image": "https://example.com/lasagne.jpg",
        "recipeIngredient": ["pasta", "sauce"],
        "recipeInstructions": [{"@type": "HowToStep", "text": "Bake."}],
        "prepTime": "PT20M",
    })
    + "</script></head><body></body></html>"
)


class FakeAuthenticator:
    is_configured = True

    async def authenticate(self, request):
        if request.headers.get("authorization") == AUTH["Authorization"]:
            return "user-1"
        return None


class ExplodingScraper:
    async def scrape(self, url):
        raise RuntimeError("bug")


@pytest.fixture
def client(guard):
    with TestClient(create_app()) as c:
        state = c.app.state
        state.authenticator = FakeAuthenticator()
        state.scraper = RecipeScraper(
            fetcher=SafeFetcher(guard=guard),
            max_response_bytes=64 * 1024,
            timeout_seconds=5,
        )
        state.rate_limiter = SlidingWindowRateLimiter(max_requests=10, window_seconds=60)
        yield c


def scrape(client, body=None, headers=AUTH, **kwargs):
    if body is not None:
        kwargs["json"] = body
    return client.post("/scrape", headers=headers, **kwargs)


# ===================================================================== #
#  Authentication and input                                              #
# ===================================================================== #

class TestAuthAndInput:

    def test_missing_token_is_401(self, client):
        response = scrape(client, {"url": TARGET}, headers={})
        assert response.status_code == 401
        assert response.json() == {"error": "Authentication required."}

    def test_bad_token_is_401(self, client):
        response = scrape(client, {"url": TARGET}, headers={"Authorization": "Bearer nope"})
        assert response.status_code == 401

    def test_auth_runs_before_body_parsing(self, client):
        response = client.post("/scrape", content=b"{garbage")
        assert response.status_code == 401

    def test_authenticator_crash_is_500(self, client):
        class BrokenAuth:
            async def authenticate(self, request):
                raise RuntimeError("supabase sdk bug")

        client.app.state.authenticator = BrokenAuth()
        response = scrape(client, {"url": TARGET})
        assert response.status_code == 500
        assert "error" in response.json()

    def test_malformed_json(self, client):
        response = client.post(
            "/scrape",
            headers={**AUTH, "Content-Type": "application/json"},
            content=b"{not json",
        )
        assert response.status_code == 400
        assert response.json() == {"error": "Invalid request body."}

    @pytest.mark.parametrize("body", [{}, {"url": ""}, {"url": 42}, {"url": None}, ["https://x.com"]])
    def test_url_required(self, client, body):
        response = scrape(client, body)
        assert response.status_code == 400
        assert response.json() == {"error": "URL is required"}

    @pytest.mark.parametrize("url", [
        "ftp://example.com/",
        "not a url",
        "javascript:alert(1)",
        "http://[::1",
    ])
    def test_invalid_url(self, client, url):
        response = scrape(client, {"url": url})
        assert response.status_code == 400
        assert response.json() == {"error": "Invalid URL. Please enter a valid web address."}

    def test_non_standard_port(self, client):
        response = scrape(client, {"url": "http://example.com:8080/"})
        assert response.status_code == 400
        assert response.json() == {"error": "Only standard HTTP ports (80, 443) are allowed."}


# ===================================================================== #
#  Rate limiting                                                         #
# ===================================================================== #

class TestRateLimiting:

    def test_eleventh_request_is_429(self, client):
        for _ in range(10):
            assert scrape(client, {}).status_code == 400

        response = scrape(client, {"url": TARGET})
        assert response.status_code == 429
        assert response.headers["retry-after"] == "60"
        assert response.json() == {"error": "Too many requests. Please wait a moment and try again."}

    def test_unauthenticated_calls_do_not_consume_quota(self, client):
        for _ in range(15):
            scrape(client, {"url": TARGET}, headers={})
        assert scrape(client, {}).status_code == 400


# ===================================================================== #
#  SSRF                                                                  #
# ===================================================================== #

class TestSSRF:

    @pytest.mark.parametrize("url", [
        "http://169.254.169.254/latest/meta-data/",
        "http://127.0.0.1/",
        "http://[::1]/",
        "http://[::ffff:10.0.0.1]/",
        "http://evil.example/",
        "http://metadata.example/",
        "http://rebind.example/",
        "http://unknown-host.example/",
    ])
    def test_private_targets_are_blocked(self, client, url):
        response = scrape(client, {"url": url})
        assert response.status_code == 400
        assert response.json() == {"error": "Invalid URL. Requests to private addresses are not allowed."}

    @respx.mock
    def test_redirect_into_private_network_is_blocked(self, client):
        respx.get(TARGET).mock(
            return_value=httpx.Response(302, headers={"Location": "http://10.0.0.5/admin"})
        )
        internal = respx.get("http://10.0.0.5/admin").mock(return_value=httpx.Response(200))

        response = scrape(client, {"url": TARGET})
        assert response.status_code == 400
        assert not internal.called

    @respx.mock
    def test_too_many_redirects(self, client):
        for i in range(6):
            respx.get(f"https://example.com/r{i}").mock(
                return_value=httpx.Response(301, headers={"Location": f"/r{i + 1}"})
            )

        response = scrape(client, {"url": "https://example.com/r0"})
        assert response.status_code == 400


# ===================================================================== #
#  Fetch outcomes                                                        #
# ===================================================================== #

class TestFetchOutcomes:

    @respx.mock
    def test_success(self, client):
        respx.get(TARGET).mock(
            return_value=httpx.Response(200, headers={"Content-Type": "text/html"}, text=RECIPE_HTML)
        )

        response = scrape(client, {"url": TARGET})
        assert response.status_code == 200
        assert response.json() == {
            "title": "Lasagne",
            "image": "https://example.com/lasagne.jpg",
            "ingredients": ["pasta", "sauce"],
            "instructions": ["Bake."],
            "prepTime": "PT20M",
            "cookTime": None,
            "totalTime": None,
            "servings": None,
            "author": None,
            "cuisineType": None,
        }

    @pytest.mark.parametrize("upstream, status, error", [
        (404, 422, "Page not found. Please check the URL and try again."),
        (403, 403, "Access denied. The site does not allow scraping."),
        (429, 429, "Rate limited. Please wait a moment and try again."),
        (500, 502, "Failed to fetch page (500)"),
    ])
    @respx.mock
    def test_upstream_errors(self, client, upstream, status, error):
        respx.get(TARGET).mock(return_value=httpx.Response(upstream, text="nope"))

        response = scrape(client, {"url": TARGET})
        assert response.status_code == status
        assert response.json() == {"error": error}

    @respx.mock
    def test_not_html(self, client):
        respx.get(TARGET).mock(return_value=httpx.Response(200, json={"recipe": "no"}))

        response = scrape(client, {"url": TARGET})
        assert response.status_code == 422
        assert response.json() == {
            "error": "The URL did not return an HTML page. Only HTML recipe pages are supported."
        }

    @respx.mock
    def test_too_large(self, client):
        respx.get(TARGET).mock(
            return_value=httpx.Response(200, headers={"Content-Type": "text/html"}, text="x" * 70000)
        )

        response = scrape(client, {"url": TARGET})
        assert response.status_code == 422
        assert response.json()["error"].startswith("Response too large")

    @respx.mock
    def test_timeout(self, client):
        respx.get(TARGET).mock(side_effect=httpx.ReadTimeout("slow"))

        response = scrape(client, {"url": TARGET})
        assert response.status_code == 504
        assert response.json() == {"error": "Request timed out. The site may be slow or unavailable."}

    @respx.mock
    def test_no_recipe(self, client):
        respx.get(TARGET).mock(
            return_value=httpx.Response(200, headers={"Content-Type": "text/html"}, text="<p>blog</p>")
        )

        response = scrape(client, {"url": TARGET})
        assert response.status_code == 422
        assert response.json()["error"].startswith("Could not find recipe data on this page.")

    def test_unexpected_error_is_500(self, client):
        client.app.state.scraper = ExplodingScraper()

        response = scrape(client, {"url": TARGET})
        assert response.status_code == 500
        assert "bug" not in response.json()["error"]


# ===================================================================== #
#  Health and metrics                                                    #
# ===================================================================== #

class TestHealthAndMetrics:

    def test_liveness(self, client):
        response = client.get("/health/")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_readiness(self, client):
        body = client.get("/health/ready").json()
        assert body["status"] == "ok"
        assert body["checks"]["auth"]["status"] == "ok"

    def test_readiness_degraded_without_auth(self, client):
        class Unconfigured(FakeAuthenticator):
            is_configured = False

        client.app.state.authenticator = Unconfigured()
        assert client.get("/health/ready").json()["status"] == "degraded"

    @respx.mock
    def test_outcomes_are_counted(self, client):
        respx.get(TARGET).mock(
            return_value=httpx.Response(200, headers={"Content-Type": "text/html"}, text=RECIPE_HTML)
        )
        scrape(client, {"url": TARGET})
        scrape(client, {"url": TARGET}, headers={})
        scrape(client, {"url": "http://127.0.0.1/"})

        outcomes = client.get("/metrics").json()["scrapes"]["by_outcome"]
        assert outcomes["success"] == 1
        assert outcomes["unauthenticated"] == 1
        assert outcomes["blocked"] == 1

    def test_prometheus_format(self, client):
        scrape(client, {"url": TARGET}, headers={})
        text = client.get("/metrics/prometheus").text
        assert 'scrape_requests_total{outcome="unauthenticated"} 1' in text
        assert "scrape_rate_limiter_tracked_callers" in text
