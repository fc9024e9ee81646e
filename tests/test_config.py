import copy

import pytest

from cdsctf.cache import CacheError
from cdsctf.config import (
    AuthConfig,
    ClusterConfig,
    Config,
    EmailConfig,
    JwtConfig,
    ProxyConfig,
    RegistrationConfig,
    SiteConfig,
    StrategyConfig,
    get_config,
    init,
)


class DictCache:
    def __init__(self, initial=None):
        self.data = dict(initial or {})

    def get(self, key):
        return copy.deepcopy(self.data.get(key))

    def set(self, key, value):
        self.data[key] = copy.deepcopy(value)


class FailingCache(DictCache):
    def set(self, key, value):
        raise CacheError("redis error: down")


def sample_config():
    return Config(
        site=SiteConfig(title="CdsCTF", description="Jeopardy", color="#0d47a1", favicon=""),
        auth=AuthConfig(
            jwt=JwtConfig(secret_key="secret", expiration=1800),
            registration=RegistrationConfig(
                enabled=True,
                captcha=False,
                email=EmailConfig(enabled=True, domains=["example.com"]),
            ),
        ),
        cluster=ClusterConfig(
            entry="127.0.0.1",
            strategy=StrategyConfig(parallel_limit=2, request_limit=5),
        ),
    )


def test_defaults_are_empty():
    config = Config()
    assert config.site.title == ""
    assert config.auth.jwt.expiration == 0
    assert config.auth.registration.email.domains == []
    assert config.cluster.strategy.parallel_limit == 0


def test_round_trip():
    config = sample_config()
    assert Config.from_dict(config.to_dict()) == config


def test_to_dict_structure():
    data = sample_config().to_dict()
    assert data["auth"]["registration"]["email"]["domains"] == ["example.com"]
    assert data["cluster"]["strategy"]["request_limit"] == 5
    assert set(data) == {"site", "auth", "cluster"}


def test_proxy_config_default():
    assert ProxyConfig() == ProxyConfig(enabled=False, traffic_capture=False)


def test_missing_field_raises():
    data = sample_config().to_dict()
    del data["auth"]["jwt"]["secret_key"]
    with pytest.raises(ValueError, match="auth.jwt.secret_key"):
        Config.from_dict(data)


@pytest.mark.parametrize(
    "path, value",
    [
        (("site", "title"), 3),
        (("auth", "registration", "enabled"), "true"),
        (("auth", "registration", "email", "domains"), "example.com"),
        (("cluster", "strategy", "parallel_limit"), -1),
    ],
)
def test_invalid_values_raise(path, value):
    data = sample_config().to_dict()
    target = data
    for key in path[:-1]:
        target = target[key]
    target[path[-1]] = value
    with pytest.raises(ValueError):
        Config.from_dict(data)


def test_init_fills_empty_cache_from_store():
    cache = DictCache()
    stored = sample_config().to_dict()
    result = init(cache, lambda: stored)
    assert result == sample_config()
    assert cache.data["config"] == stored


def test_init_keeps_existing_cache():
    existing = sample_config().to_dict()
    cache = DictCache({"config": existing})
    calls = []

    def fetch():
        calls.append(1)
        return Config().to_dict()

    init(cache, fetch)
    assert calls == []
    assert cache.data["config"] == existing


def test_init_without_stored_config_leaves_cache_empty():
    cache = DictCache()
    assert init(cache, lambda: None) is None
    assert cache.data == {}


def test_init_ignores_cache_write_errors():
    cache = FailingCache()
    result = init(cache, lambda: sample_config().to_dict())
    assert result == sample_config()
    assert cache.data == {}


def test_get_config_reads_cache():
    cache = DictCache({"config": sample_config().to_dict()})
    assert get_config(cache) == sample_config()


def test_get_config_empty_cache_raises():
    with pytest.raises(LookupError):
        get_config(DictCache())