import dataclasses

import pytest

from rerank_rag.core.config import RerankConfig, RerankProvider, RerankWeights, Settings


def test_default_config_matches_documented_defaults() -> None:
    cfg = RerankConfig()
    assert cfg.first_stage_top_k == 50
    assert cfg.final_top_k == 5
    assert cfg.provider is RerankProvider.LOCAL
    assert cfg.remote_model == "rerank-1"
    assert cfg.max_context_length == 4000
    assert (cfg.weights.semantic, cfg.weights.lexical, cfg.weights.quality, cfg.weights.freshness) == (
        0.4,
        0.3,
        0.2,
        0.1,
    )


def test_config_is_immutable() -> None:
    cfg = RerankConfig()
    with pytest.raises(dataclasses.FrozenInstanceError):
        cfg.final_top_k = 10


def test_weights_not_summing_to_one_are_normalized() -> None:
    w = RerankWeights(semantic=4, lexical=3, quality=2, freshness=1)
    assert w.semantic == pytest.approx(0.4)
    assert w.freshness == pytest.approx(0.1)


@pytest.mark.parametrize(
    "weights",
    [
        dict(semantic=-0.1, lexical=0.5, quality=0.5, freshness=0.1),
        dict(semantic=0, lexical=0, quality=0, freshness=0),
    ],
)
def test_invalid_weights_are_rejected(weights) -> None:
    with pytest.raises(ValueError):
        RerankWeights(**weights)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("local", RerankProvider.LOCAL),
        ("REMOTE", RerankProvider.REMOTE),
        ("voyage", RerankProvider.REMOTE),
        ("cohere", RerankProvider.LOCAL),
        ("", RerankProvider.LOCAL),
        (RerankProvider.REMOTE, RerankProvider.REMOTE),
    ],
)
def test_provider_parsing(raw, expected) -> None:
    assert RerankProvider.parse(raw) is expected


def test_config_accepts_provider_strings() -> None:
    assert RerankConfig(provider="remote").provider is RerankProvider.REMOTE


def test_unknown_lexical_mode_is_rejected() -> None:
    with pytest.raises(ValueError):
        RerankConfig(lexical_mode="dense")


def test_from_settings() -> None:
    s = Settings(
        RERANK_PROVIDER="remote",
        RERANK_API_KEY="secret",
        RERANK_FIRST_STAGE_TOP_K=30,
        RERANK_FINAL_TOP_K=8,
        RERANK_LEXICAL_MODE="BM25",
        RERANK_SEMANTIC_WEIGHT=0.5,
        RERANK_LEXICAL_WEIGHT=0.5,
        RERANK_QUALITY_WEIGHT=0.0,
        RERANK_FRESHNESS_WEIGHT=0.0,
    )
    cfg = RerankConfig.from_settings(s)
    assert cfg.provider is RerankProvider.REMOTE
    assert cfg.remote_api_key == "secret"
    assert (cfg.first_stage_top_k, cfg.final_top_k) == (30, 8)
    assert cfg.lexical_mode == "bm25"
    assert cfg.weights.semantic == pytest.approx(0.5)


def test_settings_read_environment(monkeypatch) -> None:
    monkeypatch.setenv("RERANK_FINAL_TOP_K", "7")
    monkeypatch.setenv("RERANK_API_KEY", "")
    cfg = RerankConfig.from_settings(Settings())
    assert cfg.final_top_k == 7
    assert cfg.remote_api_key is None
