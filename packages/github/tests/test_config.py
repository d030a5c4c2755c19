"""GitHub 配置与客户端工厂单元测试"""

import pytest
from pydantic import SecretStr
from taskrelay.github import (
    GitHubConfig,
    GitHubConfigError,
    create_http_client,
    load_github_config,
    parse_repo_string,
)


class TestLoadGitHubConfig:
    def test_defaults(self, monkeypatch):
        for var in ("GITHUB_TOKEN", "GITHUB_API_URL", "TASKRELAY_GITHUB_TIMEOUT_S"):
            monkeypatch.delenv(var, raising=False)
        config = load_github_config()
        assert config.token.get_secret_value() == ""
        assert config.api_url == "https://api.github.com"
        assert config.timeout_s == 30

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("GITHUB_TOKEN", "ghp-secret")
        monkeypatch.setenv("GITHUB_API_URL", "https://ghe.example.com/api/v3")
        monkeypatch.setenv("TASKRELAY_GITHUB_TIMEOUT_S", "10")
        config = load_github_config()
        assert config.token.get_secret_value() == "ghp-secret"
        assert "ghp-secret" not in repr(config)
        assert config.api_url == "https://ghe.example.com/api/v3"
        assert config.timeout_s == 10

    def test_invalid_timeout_falls_back(self, monkeypatch):
        monkeypatch.setenv("TASKRELAY_GITHUB_TIMEOUT_S", "soon")
        assert load_github_config().timeout_s == 30


class TestClientFactory:
    def test_parse_repo_string(self):
        assert parse_repo_string("acme/webapp") == ("acme", "webapp")

    @pytest.mark.parametrize("repo", ["acme", "acme/", "/webapp", "a/b/c"])
    def test_parse_repo_string_invalid(self, repo):
        with pytest.raises(GitHubConfigError):
            parse_repo_string(repo)

    def test_missing_token_rejected(self):
        with pytest.raises(GitHubConfigError):
            create_http_client(GitHubConfig())

    async def test_client_base_url(self):
        async with create_http_client(
            GitHubConfig(token=SecretStr("t"), api_url="https://ghe.example.com/api/v3/")
        ) as client:
            assert str(client.base_url) == "https://ghe.example.com/api/v3/"
