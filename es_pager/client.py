"""AsyncElasticsearch client construction"""

from __future__ import annotations

from elasticsearch import AsyncElasticsearch

from .config import ConnectionConfig


def build_es_client(config: ConnectionConfig) -> AsyncElasticsearch:
    """Build an AsyncElasticsearch client from a config object.

    - single node: es_url
    - cluster: es_nodes (requires credentials)

    Examples:
        # local benchmark node, self-signed certificate
        config = Config(es_username="elastic", es_password="changeme")

        # pinned cluster
        config = Config(
            es_nodes=["https://es01:9200", "https://es02:9200"],
            es_fingerprint="B1:2A:...:CF",
            es_api_key="...",
        )
    """
    hosts = config.es_nodes or [config.es_url]

    if config.es_nodes is not None:
        if not config.es_api_key and not (config.es_username and config.es_password):
            raise ValueError(
                "cluster connections need credentials: "
                "--es_api_key or --es_username + --es_password"
            )

    kwargs: dict = {"hosts": hosts, "request_timeout": config.request_timeout}

    if config.es_api_key:
        kwargs["api_key"] = config.es_api_key
    elif config.es_username and config.es_password:
        kwargs["basic_auth"] = (config.es_username, config.es_password)

    if config.es_fingerprint:
        kwargs["ssl_assert_fingerprint"] = config.es_fingerprint
        kwargs["verify_certs"] = False
    elif not config.verify_certs and any(h.startswith("https") for h in hosts):
        kwargs["verify_certs"] = False
        kwargs["ssl_show_warn"] = False

    return AsyncElasticsearch(**kwargs)
