"""Tests for the HTTP adapters, using httpx.MockTransport."""

import base64
import json

import httpx
import pytest

from sovereign_liberator.domain.entities import ApplicationSpec, TreeItem
from sovereign_liberator.domain.exceptions import (
    AuthenticationError,
    ConflictError,
    ExecutionEndpointUnavailable,
    RemoteApiError,
    ResourceNotFoundError,
    SqlExecutionError,
)
from sovereign_liberator.domain.value_objects import CoolifyTarget, SupabaseTarget
from sovereign_liberator.infrastructure.coolify_adapter import CoolifyAdapter
from sovereign_liberator.infrastructure.github_rest_adapter import GitHubRestAdapter
from sovereign_liberator.infrastructure.supabase_adapter import SupabaseAdapter


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestGitHubRestAdapter:
    """Tests for the GitHub adapter's requests and error translation."""

    @pytest.mark.asyncio
    async def test_identity_reads_scopes_header(self):
        def handler(request):
            assert request.headers["authorization"] == "Bearer tok"
            return httpx.Response(200, json={"login": "octocat"}, headers={"X-OAuth-Scopes": "repo, workflow"})

        async with _client(handler) as client:
            identity = await GitHubRestAdapter(client, "tok").get_identity()

        assert identity.login == "octocat"
        assert identity.scopes == ("repo", "workflow")

    @pytest.mark.asyncio
    async def test_identity_forbidden_is_authentication_error(self):
        async with _client(lambda r: httpx.Response(403, json={"message": "Forbidden"})) as client:
            with pytest.raises(AuthenticationError):
                await GitHubRestAdapter(client, "tok").get_identity()

    @pytest.mark.asyncio
    async def test_missing_repo_is_none(self):
        async with _client(lambda r: httpx.Response(404, json={"message": "Not Found"})) as client:
            assert await GitHubRestAdapter(client, "tok").get_repo("o", "r") is None

    @pytest.mark.asyncio
    async def test_existing_repo_is_parsed(self):
        payload = {
            "owner": {"login": "octocat"},
            "name": "shop",
            "html_url": "https://github.com/octocat/shop",
            "default_branch": "trunk",
        }
        async with _client(lambda r: httpx.Response(200, json=payload)) as client:
            repo = await GitHubRestAdapter(client, "tok").get_repo("octocat", "shop")

        assert (repo.owner, repo.name, repo.html_url) == ("octocat", "shop", "https://github.com/octocat/shop")
        assert not hasattr(repo, "default_branch")

    @pytest.mark.asyncio
    async def test_empty_repository_has_no_head(self):
        async with _client(lambda r: httpx.Response(409, json={"message": "Git Repository is empty."})) as client:
            assert await GitHubRestAdapter(client, "tok").get_branch_head("o", "r", "main") is None

    @pytest.mark.asyncio
    async def test_branch_head_resolves_tree(self):
        def handler(request):
            if request.url.path.endswith("/git/ref/heads/main"):
                return httpx.Response(200, json={"object": {"sha": "c1"}})
            assert request.url.path.endswith("/git/commits/c1")
            return httpx.Response(200, json={"tree": {"sha": "t1"}})

        async with _client(handler) as client:
            head = await GitHubRestAdapter(client, "tok").get_branch_head("o", "r", "main")

        assert (head.commit_sha, head.tree_sha) == ("c1", "t1")

    @pytest.mark.asyncio
    async def test_blob_is_base64(self):
        seen = {}

        def handler(request):
            seen.update(json.loads(request.content))
            return httpx.Response(201, json={"sha": "b1"})

        async with _client(handler) as client:
            sha = await GitHubRestAdapter(client, "tok").create_blob("o", "r", "héllo")

        assert sha == "b1"
        assert seen["encoding"] == "base64"
        assert base64.b64decode(seen["content"]).decode("utf-8") == "héllo"

    @pytest.mark.asyncio
    async def test_tree_payload(self):
        seen = {}

        def handler(request):
            seen.update(json.loads(request.content))
            return httpx.Response(201, json={"sha": "t2"})

        items = [TreeItem(path="a.ts", content="1"), TreeItem(path="big.json", sha="b1")]
        async with _client(handler) as client:
            await GitHubRestAdapter(client, "tok").create_tree("o", "r", items, "t1")

        assert seen["base_tree"] == "t1"
        assert seen["tree"][0] == {"path": "a.ts", "mode": "100644", "type": "blob", "content": "1"}
        assert seen["tree"][1]["sha"] == "b1"
        assert "content" not in seen["tree"][1]

    @pytest.mark.asyncio
    async def test_force_ref_update(self):
        seen = {}

        def handler(request):
            seen["method"] = request.method
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={})

        async with _client(handler) as client:
            await GitHubRestAdapter(client, "tok").update_ref("o", "r", "main", "c9")

        assert seen == {"method": "PATCH", "body": {"sha": "c9", "force": True}}

    @pytest.mark.asyncio
    async def test_rate_limit(self):
        def handler(request):
            return httpx.Response(
                403,
                json={"message": "API rate limit exceeded"},
                headers={"x-ratelimit-remaining": "0", "x-ratelimit-reset": "1700000000"},
            )

        async with _client(handler) as client:
            with pytest.raises(RemoteApiError, match="rate limit"):
                await GitHubRestAdapter(client, "tok").create_blob("o", "r", "x")

    @pytest.mark.asyncio
    async def test_validation_error_is_conflict(self):
        async with _client(lambda r: httpx.Response(422, json={"message": "name already exists"})) as client:
            with pytest.raises(ConflictError, match="name already exists"):
                await GitHubRestAdapter(client, "tok").create_repo("r")

    @pytest.mark.asyncio
    async def test_network_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused")

        async with _client(handler) as client:
            with pytest.raises(RemoteApiError, match="Network error"):
                await GitHubRestAdapter(client, "tok").get_identity()


class TestSupabaseAdapter:
    """Tests for SQL execution and the management-API fallback."""

    HOSTED = SupabaseTarget.from_strings("https://abcd1234.supabase.co", "service-key")

    @pytest.mark.asyncio
    async def test_rpc_success(self):
        def handler(request):
            assert request.url.path == "/rest/v1/rpc/exec_sql"
            assert request.headers["apikey"] == "service-key"
            assert json.loads(request.content) == {"query": "SELECT 1"}
            return httpx.Response(204)

        async with _client(handler) as client:
            await SupabaseAdapter(client, self.HOSTED).execute_sql("SELECT 1")

    @pytest.mark.asyncio
    async def test_rpc_error_keeps_engine_message(self):
        body = '{"code":"42P07","message":"relation \\"t\\" already exists"}'
        async with _client(lambda r: httpx.Response(400, text=body)) as client:
            with pytest.raises(SqlExecutionError) as excinfo:
                await SupabaseAdapter(client, self.HOSTED).execute_sql("CREATE TABLE t (id int)")

        assert "already exists" in excinfo.value.body
        assert excinfo.value.status_code == 400

    @pytest.mark.asyncio
    async def test_missing_rpc_falls_back_to_management_api(self):
        paths = []

        def handler(request):
            paths.append(f"{request.url.host}{request.url.path}")
            if request.url.path == "/rest/v1/rpc/exec_sql":
                return httpx.Response(404, json={"message": "function not found"})
            return httpx.Response(201, json=[])

        async with _client(handler) as client:
            adapter = SupabaseAdapter(client, self.HOSTED)
            await adapter.execute_sql("SELECT 1")
            await adapter.execute_sql("SELECT 2")

        assert paths == [
            "abcd1234.supabase.co/rest/v1/rpc/exec_sql",
            "api.supabase.com/v1/projects/abcd1234/database/query",
            "api.supabase.com/v1/projects/abcd1234/database/query",
        ]

    @pytest.mark.asyncio
    async def test_self_hosted_without_rpc(self):
        target = SupabaseTarget.from_strings("https://db.example.org", "service-key")
        async with _client(lambda r: httpx.Response(404)) as client:
            adapter = SupabaseAdapter(client, target)
            assert adapter.manages_secrets is False
            with pytest.raises(ExecutionEndpointUnavailable):
                await adapter.execute_sql("SELECT 1")

    @pytest.mark.asyncio
    async def test_set_secret(self):
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(201)

        async with _client(handler) as client:
            await SupabaseAdapter(client, self.HOSTED).set_secret("STRIPE_KEY", "sk")

        assert seen == {"path": "/v1/projects/abcd1234/secrets", "body": [{"name": "STRIPE_KEY", "value": "sk"}]}


class TestCoolifyAdapter:
    """Tests for the Coolify adapter."""

    TARGET = CoolifyTarget.from_strings("https://coolify.example.com/", "cf-token")
    SPEC = ApplicationSpec(
        project_uuid="p1", server_uuid="s1", git_repository="https://github.com/o/r", name="r"
    )

    @pytest.mark.asyncio
    async def test_list_servers(self):
        def handler(request):
            assert str(request.url) == "https://coolify.example.com/api/v1/servers"
            assert request.headers["authorization"] == "Bearer cf-token"
            return httpx.Response(200, json=[{"uuid": "s1"}])

        async with _client(handler) as client:
            assert await CoolifyAdapter(client, self.TARGET).list_servers() == [{"uuid": "s1"}]

    @pytest.mark.parametrize(("status", "exc"), [(401, AuthenticationError), (403, AuthenticationError), (404, ResourceNotFoundError)])
    @pytest.mark.asyncio
    async def test_probe_errors(self, status, exc):
        async with _client(lambda r: httpx.Response(status)) as client:
            with pytest.raises(exc):
                await CoolifyAdapter(client, self.TARGET).list_servers()

    @pytest.mark.asyncio
    async def test_nixpacks_application_payload(self):
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(201, json={"uuid": "a1"})

        async with _client(handler) as client:
            uuid = await CoolifyAdapter(client, self.TARGET).create_nixpacks_application(self.SPEC)

        assert uuid == "a1"
        assert seen["path"] == "/api/v1/applications/public"
        assert seen["body"]["build_pack"] == "nixpacks"
        assert seen["body"]["ports_exposes"] == "3000"
        assert seen["body"]["git_branch"] == "main"

    @pytest.mark.asyncio
    async def test_dockerfile_application_payload(self):
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(201, json={"uuid": "a2"})

        async with _client(handler) as client:
            await CoolifyAdapter(client, self.TARGET).create_dockerfile_application(self.SPEC)

        assert seen["path"] == "/api/v1/applications/dockerfile"
        assert seen["body"]["dockerfile_location"] == "/Dockerfile"
        assert seen["body"]["ports_exposes"] == "80"

    @pytest.mark.asyncio
    async def test_list_applications(self):
        def handler(request):
            assert request.method == "GET"
            assert request.url.path == "/api/v1/applications"
            return httpx.Response(200, json=[{"uuid": "a1", "name": "r"}, {"name": "no-uuid"}])

        async with _client(handler) as client:
            apps = await CoolifyAdapter(client, self.TARGET).list_applications()

        assert apps == [{"uuid": "a1", "name": "r"}]

    @pytest.mark.asyncio
    async def test_update_env_patches(self):
        seen = {}

        def handler(request):
            seen["method"] = request.method
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(201, json={"uuid": "e1"})

        async with _client(handler) as client:
            await CoolifyAdapter(client, self.TARGET).update_env("a1", "API_URL", "https://api.example.com")

        assert seen["method"] == "PATCH"
        assert seen["path"] == "/api/v1/applications/a1/envs"
        assert seen["body"]["key"] == "API_URL"

    @pytest.mark.asyncio
    async def test_delete_server(self):
        seen = {}

        def handler(request):
            seen["call"] = (request.method, request.url.path)
            return httpx.Response(200, json={"message": "Server deleted."})

        async with _client(handler) as client:
            await CoolifyAdapter(client, self.TARGET).delete_server("s1")

        assert seen["call"] == ("DELETE", "/api/v1/servers/s1")

    @pytest.mark.asyncio
    async def test_deploy_returns_deployment_uuid(self):
        def handler(request):
            assert request.url.path == "/api/v1/deploy"
            assert request.url.params["uuid"] == "a1"
            assert request.url.params["force"] == "true"
            return httpx.Response(200, json={"deployments": [{"deployment_uuid": "d1", "resource_uuid": "a1"}]})

        async with _client(handler) as client:
            assert await CoolifyAdapter(client, self.TARGET).deploy("a1") == "d1"

    @pytest.mark.asyncio
    async def test_deployment_logs(self):
        async with _client(lambda r: httpx.Response(200, json={"logs": "step 1\nstep 2"})) as client:
            logs = await CoolifyAdapter(client, self.TARGET).get_deployment_logs("d1")

        assert logs == "step 1\nstep 2"

    @pytest.mark.asyncio
    async def test_server_error_keeps_redacted_body(self):
        body = "boom: Bearer abcdefghijklmnopqrstuvwxyz"
        async with _client(lambda r: httpx.Response(500, text=body)) as client:
            with pytest.raises(RemoteApiError) as excinfo:
                await CoolifyAdapter(client, self.TARGET).delete_project("p1")

        assert excinfo.value.status_code == 500
        assert "abcdefghijklmnop" not in excinfo.value.body
