import asyncio
import base64
import json
import logging
import time

import httpx
import pytest
import respx

from repocraft import github

API = "https://api.github.com/repos/octo/demo"


def _contents_url(path: str) -> str:
    return f"{API}/contents/{path}"


class TestHandleError:
    @pytest.mark.parametrize(
        "status, text, expected",
        [
            (401, "Bad credentials", 401),
            (404, "Not Found", 404),
            (403, "API rate limit exceeded for user", 429),
            (403, "Resource not accessible", 403),
            (500, "boom", 500),
        ],
    )
    def test_status_mapping(self, status, text, expected):
        resp = httpx.Response(status, text=text)
        with pytest.raises(github.GitHubError) as exc_info:
            github._handle_error(resp, "Repository")
        assert exc_info.value.status_code == expected

    def test_success_passes(self):
        github._handle_error(httpx.Response(200, json={}), "Repository")


class TestTruncate:
    def test_short_content_untouched(self):
        assert github.truncate("abc", 3_000) == "abc"

    def test_long_content_cut_with_marker(self):
        content = "x" * 3_500
        result = github.truncate(content, 3_000)
        assert result == "x" * 3_000 + github.TRUNCATION_MARKER
        assert result.endswith("[file truncated]")


class TestFetchKeyFiles:
    @respx.mock
    async def test_partial_failure_is_tolerated(self):
        paths = [f"src/file_{i}.ts" for i in range(1, 7)]
        routes = {}
        for i, path in enumerate(paths, start=1):
            route = respx.get(_contents_url(path))
            if i == 3:
                route.mock(side_effect=httpx.ReadTimeout("timed out"))
            else:
                route.mock(return_value=httpx.Response(200, text=f"content {i}"))
            routes[path] = route

        async with httpx.AsyncClient() as client:
            result = await github.fetch_key_files(client, "octo", "demo", paths, "tok", batch_size=5)

        assert len(result) == 5
        assert "src/file_3.ts" not in result
        assert list(result) == [p for p in paths if p != "src/file_3.ts"]
        assert all(route.call_count == 1 for route in routes.values())

    @respx.mock
    async def test_error_statuses_are_omitted(self):
        respx.get(_contents_url("a.py")).mock(return_value=httpx.Response(200, text="print(1)"))
        respx.get(_contents_url("b.py")).mock(return_value=httpx.Response(404, json={"message": "Not Found"}))
        respx.get(_contents_url("c.py")).mock(return_value=httpx.Response(500, text="oops"))
        respx.get(_contents_url("d.py")).mock(side_effect=httpx.ConnectError("refused"))

        async with httpx.AsyncClient() as client:
            result = await github.fetch_key_files(client, "octo", "demo", ["a.py", "b.py", "c.py", "d.py"], "tok")

        assert result == {"a.py": "print(1)"}

    @respx.mock
    async def test_truncates_large_files(self):
        big = "y" * 5_000
        respx.get(_contents_url("big.js")).mock(return_value=httpx.Response(200, text=big))

        async with httpx.AsyncClient() as client:
            result = await github.fetch_key_files(client, "octo", "demo", ["big.js"], "tok")

        assert result["big.js"] == "y" * 3_000 + "\n... [file truncated]"

    @respx.mock
    async def test_requests_raw_content_with_bearer_token(self):
        route = respx.get(_contents_url("main.py")).mock(return_value=httpx.Response(200, text="x = 1"))

        async with httpx.AsyncClient() as client:
            await github.fetch_key_files(client, "octo", "demo", ["main.py"], "secret-token")

        request = route.calls.last.request
        assert request.headers["Authorization"] == "Bearer secret-token"
        assert request.headers["Accept"] == github.RAW_ACCEPT

    async def test_empty_selection(self):
        async with httpx.AsyncClient() as client:
            assert await github.fetch_key_files(client, "octo", "demo", [], "tok") == {}

    @respx.mock
    async def test_slow_body_is_cut_by_the_per_file_deadline(self):
        async def trickle(request):
            await asyncio.sleep(2)
            return httpx.Response(200, text="xxxxx")

        respx.get(_contents_url("slow.py")).mock(side_effect=trickle)
        respx.get(_contents_url("fast.py")).mock(return_value=httpx.Response(200, text="ok"))

        t0 = time.monotonic()
        async with httpx.AsyncClient() as client:
            result = await github.fetch_key_files(client, "octo", "demo", ["slow.py", "fast.py"], "tok", timeout=0.2)

        assert result == {"fast.py": "ok"}
        assert time.monotonic() - t0 < 1.5

    @respx.mock
    async def test_batches_run_one_after_another(self):
        paths = [f"src/file_{i}.ts" for i in range(1, 7)]
        state = {"in_flight": 0, "peak": 0, "finished": 0}
        started_after = {}

        def _handler(delay):
            async def _respond(request):
                path = request.url.path.split("/contents/", 1)[1]
                started_after[path] = state["finished"]
                state["in_flight"] += 1
                state["peak"] = max(state["peak"], state["in_flight"])
                try:
                    await asyncio.sleep(delay)
                    return httpx.Response(200, text=f"content of {path}")
                finally:
                    state["in_flight"] -= 1
                    state["finished"] += 1

            return _respond

        for i, path in enumerate(paths, start=1):
            # file 3 outlives the deadline
            respx.get(_contents_url(path)).mock(side_effect=_handler(2 if i == 3 else 0.05))

        async with httpx.AsyncClient() as client:
            result = await github.fetch_key_files(client, "octo", "demo", paths, "tok", batch_size=5, timeout=0.3)

        assert len(result) == 5
        assert "src/file_3.ts" not in result
        assert state["peak"] == 5
        assert all(started_after[p] == 0 for p in paths[:5])
        assert started_after["src/file_6.ts"] == 5

    @respx.mock
    async def test_empty_file_counts_as_failed(self, caplog):
        respx.get(_contents_url("empty.py")).mock(return_value=httpx.Response(200, text=""))
        respx.get(_contents_url("main.py")).mock(return_value=httpx.Response(200, text="x = 1"))

        with caplog.at_level(logging.INFO, logger="repocraft.github"):
            async with httpx.AsyncClient() as client:
                result = await github.fetch_key_files(client, "octo", "demo", ["empty.py", "main.py"], "tok")

        assert result == {"main.py": "x = 1"}
        assert "Fetched 1/2 key files (1 failed)" in caplog.text


class TestReadApi:
    @respx.mock
    async def test_fetch_repo_tree_returns_entries(self):
        respx.get(f"{API}/git/trees/HEAD", params={"recursive": "1"}).mock(
            return_value=httpx.Response(
                200,
                json={
                    "sha": "root",
                    "tree": [
                        {"path": "README.md", "type": "blob", "sha": "1", "mode": "100644", "size": 10},
                        {"path": "src", "type": "tree", "sha": "2", "mode": "040000"},
                    ],
                    "truncated": False,
                },
            )
        )

        async with httpx.AsyncClient() as client:
            tree = await github.fetch_repo_tree(client, "octo", "demo", "tok")

        assert [(e.path, e.type, e.sha) for e in tree] == [("README.md", "blob", "1"), ("src", "tree", "2")]

    @respx.mock
    async def test_fetch_package_json_decodes_manifest(self):
        manifest = {"name": "demo", "dependencies": {"react": "18"}}
        encoded = base64.b64encode(json.dumps(manifest).encode()).decode()
        respx.get(_contents_url("package.json")).mock(
            return_value=httpx.Response(200, json={"content": encoded, "encoding": "base64"})
        )

        async with httpx.AsyncClient() as client:
            assert await github.fetch_package_json(client, "octo", "demo", "tok") == manifest

    @respx.mock
    async def test_fetch_package_json_invalid_json(self):
        encoded = base64.b64encode(b"{not json").decode()
        respx.get(_contents_url("package.json")).mock(
            return_value=httpx.Response(200, json={"content": encoded, "encoding": "base64"})
        )

        async with httpx.AsyncClient() as client:
            assert await github.fetch_package_json(client, "octo", "demo", "tok") is None

    @respx.mock
    async def test_fetch_readme_not_found(self):
        respx.get(f"{API}/readme").mock(return_value=httpx.Response(404, json={"message": "Not Found"}))

        async with httpx.AsyncClient() as client:
            with pytest.raises(github.GitHubError) as exc_info:
                await github.fetch_readme(client, "octo", "demo", "tok")
        assert exc_info.value.status_code == 404


class TestWriteApi:
    @respx.mock
    async def test_create_branch_tolerates_existing(self):
        respx.post(f"{API}/git/refs").mock(
            return_value=httpx.Response(422, json={"message": "Reference already exists"})
        )

        async with httpx.AsyncClient() as client:
            assert await github.create_branch(client, "octo", "demo", "b", "sha", "tok") is False

    @respx.mock
    async def test_fetch_file_sha_missing_file(self):
        respx.get(_contents_url("README.md"), params={"ref": "main"}).mock(
            return_value=httpx.Response(404, json={"message": "Not Found"})
        )

        async with httpx.AsyncClient() as client:
            assert await github.fetch_file_sha(client, "octo", "demo", "README.md", "main", "tok") is None

    @respx.mock
    async def test_put_file_sends_base64_and_sha(self):
        route = respx.put(_contents_url("README.md")).mock(
            return_value=httpx.Response(200, json={"commit": {"html_url": "https://github.com/c/1"}})
        )

        async with httpx.AsyncClient() as client:
            await github.put_file(client, "octo", "demo", "README.md", "# Hi", "msg", "main", "abc", "tok")

        body = json.loads(route.calls.last.request.content)
        assert base64.b64decode(body["content"]).decode() == "# Hi"
        assert body["sha"] == "abc"
        assert body["branch"] == "main"

    @respx.mock
    async def test_put_file_without_sha_creates(self):
        route = respx.put(_contents_url("README.md")).mock(return_value=httpx.Response(201, json={}))

        async with httpx.AsyncClient() as client:
            await github.put_file(client, "octo", "demo", "README.md", "# Hi", "msg", "main", None, "tok")

        assert "sha" not in json.loads(route.calls.last.request.content)

    @respx.mock
    async def test_create_pull_request_returns_existing(self):
        respx.post(f"{API}/pulls").mock(
            return_value=httpx.Response(
                422, json={"message": "Validation Failed", "errors": [{"message": "A pull request already exists"}]}
            )
        )
        respx.get(f"{API}/pulls", params={"head": "octo:b", "base": "main", "state": "open"}).mock(
            return_value=httpx.Response(200, json=[{"html_url": "https://github.com/octo/demo/pull/7"}])
        )

        async with httpx.AsyncClient() as client:
            pr = await github.create_pull_request(client, "octo", "demo", "b", "main", "t", "body", "tok")

        assert pr["html_url"] == "https://github.com/octo/demo/pull/7"


class TestOAuth:
    def test_authorize_url(self, monkeypatch):
        monkeypatch.setenv("GITHUB_CLIENT_ID", "cid")
        url = github.authorize_url("xyz", "http://testserver/auth/callback")
        assert url.startswith("https://github.com/login/oauth/authorize?")
        assert "client_id=cid" in url
        assert "state=xyz" in url

    async def test_exchange_code_requires_configuration(self, monkeypatch):
        monkeypatch.delenv("GITHUB_CLIENT_ID", raising=False)
        monkeypatch.delenv("GITHUB_CLIENT_SECRET", raising=False)
        async with httpx.AsyncClient() as client:
            with pytest.raises(github.GitHubError, match="not configured"):
                await github.exchange_code(client, "code", "http://testserver/auth/callback")

    @respx.mock
    async def test_exchange_code(self, monkeypatch):
        monkeypatch.setenv("GITHUB_CLIENT_ID", "cid")
        monkeypatch.setenv("GITHUB_CLIENT_SECRET", "secret")
        respx.post("https://github.com/login/oauth/access_token").mock(
            return_value=httpx.Response(200, json={"access_token": "gho_abc", "token_type": "bearer"})
        )

        async with httpx.AsyncClient() as client:
            token = await github.exchange_code(client, "code", "http://testserver/auth/callback")

        assert token == "gho_abc"
