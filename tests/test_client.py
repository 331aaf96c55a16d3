from unittest.mock import patch

import pytest

from es_pager.client import build_es_client
from es_pager.config import Config


def _build(**kwargs) -> dict:
    with patch("es_pager.client.AsyncElasticsearch") as es_cls:
        build_es_client(Config(**kwargs))
    return es_cls.call_args.kwargs


def test_local_node_with_self_signed_cert():
    kwargs = _build(es_username="elastic", es_password="changeme")
    assert kwargs["hosts"] == ["https://localhost:9200"]
    assert kwargs["basic_auth"] == ("elastic", "changeme")
    assert kwargs["verify_certs"] is False
    assert kwargs["ssl_show_warn"] is False
    assert kwargs["request_timeout"] == 120.0


def test_plain_http_leaves_tls_alone():
    kwargs = _build(es_url="http://localhost:9200")
    assert "verify_certs" not in kwargs
    assert "basic_auth" not in kwargs


def test_api_key_wins_over_basic_auth():
    kwargs = _build(es_api_key="key", es_username="u", es_password="p")
    assert kwargs["api_key"] == "key"
    assert "basic_auth" not in kwargs


def test_cluster_with_fingerprint():
    nodes = ["https://es01:9200", "https://es02:9200"]
    kwargs = _build(es_nodes=nodes, es_fingerprint="AA:BB", es_api_key="key")
    assert kwargs["hosts"] == nodes
    assert kwargs["ssl_assert_fingerprint"] == "AA:BB"
    assert kwargs["verify_certs"] is False


def test_cluster_requires_credentials():
    with pytest.raises(ValueError):
        _build(es_nodes=["https://es01:9200"])


def test_credentials_not_in_config_repr():
    text = repr(Config(es_password="s3cret", es_api_key="k3y"))
    assert "s3cret" not in text
    assert "k3y" not in text
