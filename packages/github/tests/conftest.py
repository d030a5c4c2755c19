"""packages/github 测试配置 -- httpx.MockTransport 模拟 GitHub REST API"""

import base64
import hashlib
import json
import re

import httpx
import pytest
import pytest_asyncio
from pydantic import SecretStr
from taskrelay.github import GitHubConfig, create_http_client

ISSUES_RE = re.compile(r"^/repos/[^/]+/[^/]+/issues(?:/(\d+))?(/comments)?$")


class FakeGitHub:
    """Contents API + Issues API 的最小内存实现"""

    def __init__(self) -> None:
        self.files: dict[str, tuple[bytes, str]] = {}
        self.requests: list[httpx.Request] = []
        self.issues: dict[int, dict] = {}
        self.comments: list[tuple[int, str]] = []
        self.fail_status: int | None = None

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail_status is not None:
            return httpx.Response(self.fail_status, json={"message": "boom"})

        path = request.url.path
        if "/contents/" in path:
            return self._contents(request, path.split("/contents/", 1)[1])
        if match := ISSUES_RE.match(path):
            return self._issues(request, match)
        if request.method == "GET" and path.count("/") == 3:
            return httpx.Response(200, json={"full_name": path.removeprefix("/repos/")})
        return httpx.Response(404, json={"message": "Not Found"})

    def _contents(self, request: httpx.Request, file_path: str) -> httpx.Response:
        current = self.files.get(file_path)
        if request.method == "GET":
            if current is None:
                return httpx.Response(404, json={"message": "Not Found"})
            content, sha = current
            return httpx.Response(
                200,
                json={
                    "type": "file",
                    "encoding": "base64",
                    "content": base64.encodebytes(content).decode("ascii"),
                    "sha": sha,
                },
            )

        body = json.loads(request.content)
        if current is not None and "sha" not in body:
            return httpx.Response(422, json={"message": 'Invalid request. "sha" wasn\'t supplied.'})
        if (current is None and "sha" in body) or (
            current is not None and body["sha"] != current[1]
        ):
            return httpx.Response(409, json={"message": "does not match"})

        content = base64.b64decode(body["content"])
        sha = hashlib.sha1(content).hexdigest()
        self.files[file_path] = (content, sha)
        return httpx.Response(201 if current is None else 200, json={"content": {"sha": sha}})

    def _issues(self, request: httpx.Request, match: re.Match) -> httpx.Response:
        body = json.loads(request.content) if request.content else {}
        number, comments = match.group(1), match.group(2)
        if number is None:
            issue_number = len(self.issues) + 1
            self.issues[issue_number] = {**body, "state": "open"}
            return httpx.Response(201, json={"number": issue_number})
        if comments:
            self.comments.append((int(number), body["body"]))
            return httpx.Response(201, json={"id": len(self.comments)})
        self.issues[int(number)].update(body)
        return httpx.Response(200, json={"number": int(number)})


@pytest.fixture
def fake_github() -> FakeGitHub:
    return FakeGitHub()


@pytest_asyncio.fixture
async def github_client(fake_github: FakeGitHub):
    client = create_http_client(
        GitHubConfig(token=SecretStr("ghp-test")),
        transport=httpx.MockTransport(fake_github),
    )
    yield client
    await client.aclose()
