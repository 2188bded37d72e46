import itertools
import logging
import threading

import pandas as pd
import pytest

from reconciler import InvalidRowError, ReconciliationCancelled, ReconciliationEngine
from reconciler.config.models import (
    FieldMapping,
    MatchAlgorithm,
    MatchStatus,
    ReconciliationConfig,
)


def make_counter_ids():
    counter = itertools.count(1)
    return lambda: f"r{next(counter)}"


def by_status(result, status):
    return [r for r in result.results if r.status is status]


def test_exact_strategy_scenario(source_rows, target_rows, server_config):
    result = ReconciliationEngine(strategy="exact").reconcile(source_rows, target_rows, server_config)

    summary = result.summary
    assert summary.total == 5
    assert summary.matched == 2
    assert summary.conflicts == 1
    assert (summary.orphans.source, summary.orphans.target) == (1, 1)

    first = result.results[0]
    assert first.status is MatchStatus.MATCHED
    assert first.confidence_score == 1.0
    assert first.metadata.algorithm is MatchAlgorithm.EXACT

    orphans = by_status(result, MatchStatus.ORPHAN)
    assert orphans[0].source_row["name"] == "Server D"
    assert orphans[0].target_row is None
    assert orphans[1].target_row["hostname"] == "Server_D"
    assert orphans[1].source_row is None
    assert orphans[1].target_index == 3


def test_fuzzy_strategy_scenario(source_rows, target_rows, server_config):
    result = ReconciliationEngine(strategy="fuzzy").reconcile(source_rows, target_rows, server_config)

    summary = result.summary
    assert summary.total == 4
    assert summary.matched == 3
    assert summary.conflicts == 1
    assert (summary.orphans.source, summary.orphans.target) == (0, 0)

    server_d = result.results[3]
    assert server_d.status is MatchStatus.MATCHED
    assert server_d.target_row["hostname"] == "Server_D"
    assert server_d.confidence_score >= 0.8


def test_conflict_records_raw_differences(source_rows, target_rows, server_config):
    result = ReconciliationEngine().reconcile(source_rows, target_rows, server_config)

    conflict = by_status(result, MatchStatus.CONFLICT)[0]
    assert conflict.source_index == 1
    assert conflict.target_index == 1
    assert conflict.differences == {
        "ip": {"source": "192.168.1.2", "target": "192.168.1.20"}
    }


def test_surrounding_whitespace_is_not_a_difference():
    mappings = [
        FieldMapping(id="k", source_field="k", target_field="k", is_key=True),
        FieldMapping(id="v", source_field="v", target_field="v"),
    ]
    differences = ReconciliationEngine.find_differences(
        {"k": "1", "v": " x "}, {"k": "1", "v": "x"}, mappings
    )
    assert differences == {}


def test_missing_field_equals_empty_value():
    mappings = [FieldMapping(id="v", source_field="v", target_field="w")]
    assert ReconciliationEngine.find_differences({}, {"w": ""}, mappings) == {}
    assert ReconciliationEngine.find_differences({"v": None}, {"w": ""}, mappings) == {}


def test_no_key_mapping_orphans_everything(source_rows, target_rows, caplog):
    config = ReconciliationConfig(
        mappings=[FieldMapping(id="m1", source_field="name", target_field="hostname")]
    )

    with caplog.at_level(logging.WARNING, logger="reconciler.core.engine"):
        result = ReconciliationEngine(strategy="fuzzy").reconcile(source_rows, target_rows, config)

    summary = result.summary
    assert summary.matched == 0
    assert summary.total == len(source_rows) + len(target_rows)
    assert (summary.orphans.source, summary.orphans.target) == (4, 4)
    assert "No key mapping" in caplog.text


def test_identical_datasets_fully_match(source_rows, server_mappings):
    mappings = [
        FieldMapping(id=m.id, source_field=m.source_field, target_field=m.source_field, is_key=m.is_key)
        for m in server_mappings
    ]
    config = ReconciliationConfig(mappings=mappings)

    for strategy in ("exact", "fuzzy"):
        summary = ReconciliationEngine(strategy=strategy).reconcile(
            source_rows, [dict(row) for row in source_rows], config
        ).summary
        assert summary.matched == len(source_rows)
        assert summary.conflicts == 0
        assert (summary.orphans.source, summary.orphans.target) == (0, 0)


@pytest.mark.parametrize("strategy", ["exact", "fuzzy"])
def test_every_row_appears_exactly_once(source_rows, target_rows, server_config, strategy):
    result = ReconciliationEngine(strategy=strategy).reconcile(source_rows, target_rows, server_config)

    source_indices = [r.source_index for r in result.results if r.source_row is not None]
    target_indices = [r.target_index for r in result.results if r.target_row is not None]
    assert sorted(source_indices) == list(range(len(source_rows)))
    assert sorted(target_indices) == list(range(len(target_rows)))

    summary = result.summary
    assert summary.total == (
        summary.matched + summary.conflicts + summary.orphans.source + summary.orphans.target
    )


def test_results_are_deterministic(source_rows, target_rows, server_config):
    first = ReconciliationEngine(strategy="fuzzy", id_factory=make_counter_ids())
    second = ReconciliationEngine(strategy="fuzzy", id_factory=make_counter_ids())

    assert (
        first.reconcile(source_rows, target_rows, server_config).to_dict()
        == second.reconcile(source_rows, target_rows, server_config).to_dict()
    )


def test_result_ids_are_unique(source_rows, target_rows, server_config):
    result = ReconciliationEngine().reconcile(source_rows, target_rows, server_config)
    ids = [r.id for r in result.results]
    assert len(set(ids)) == len(ids)


def test_raising_threshold_never_adds_matches(source_rows, target_rows, server_mappings):
    engine = ReconciliationEngine(strategy="fuzzy")
    paired = []
    for threshold in (0.5, 0.8, 0.9, 1.0):
        config = ReconciliationConfig(mappings=server_mappings, fuzzy_threshold=threshold)
        summary = engine.reconcile(source_rows, target_rows, config).summary
        paired.append(summary.matched + summary.conflicts)

    assert paired == sorted(paired, reverse=True)


def test_config_strategy_overrides_engine_strategy(source_rows, target_rows, server_mappings):
    config = ReconciliationConfig(mappings=server_mappings, strategy="fuzzy")
    engine = ReconciliationEngine(strategy="exact")

    result = engine.reconcile(source_rows, target_rows, config)

    assert result.summary.orphans.source == 0
    assert engine.strategy.name == "exact"


def test_set_strategy_switches_strategy(source_rows, target_rows, server_config):
    engine = ReconciliationEngine()
    engine.set_strategy("fuzzy")
    assert engine.reconcile(source_rows, target_rows, server_config).summary.matched == 3


def test_unknown_strategy_is_rejected():
    with pytest.raises(ValueError):
        ReconciliationEngine(strategy="hungarian")


def test_dataframe_input(source_rows, target_rows, server_config):
    result = ReconciliationEngine().reconcile(
        pd.DataFrame(source_rows), pd.DataFrame(target_rows), server_config
    )
    assert result.summary.matched == 2
    assert result.results[0].source_row["name"] == "Server A"


def test_invalid_row_shape_is_reported(target_rows, server_config):
    with pytest.raises(InvalidRowError, match="source row 1"):
        ReconciliationEngine().reconcile(
            [{"name": "Server A"}, ["Server B"]], target_rows, server_config
        )


def test_cancel_event_stops_the_run(source_rows, target_rows, server_config):
    cancel = threading.Event()
    cancel.set()
    with pytest.raises(ReconciliationCancelled):
        ReconciliationEngine().reconcile(source_rows, target_rows, server_config, cancel_event=cancel)


def test_exhausted_timeout_stops_the_run(source_rows, target_rows, server_config):
    with pytest.raises(ReconciliationCancelled, match="timed out"):
        ReconciliationEngine().reconcile(source_rows, target_rows, server_config, timeout=0)


def test_empty_datasets():
    config = ReconciliationConfig(
        mappings=[FieldMapping(id="m1", source_field="a", target_field="b", is_key=True)]
    )
    result = ReconciliationEngine().reconcile([], [], config)
    assert result.summary.total == 0
    assert result.results == []


def test_scorer_caches_are_cleared_between_runs(source_rows, target_rows, server_config):
    engine = ReconciliationEngine(strategy="fuzzy")
    engine.reconcile(source_rows, target_rows, server_config)
    after_first = engine.scorer.stats()["compare_composite_keys"]

    engine.reconcile(source_rows, target_rows, server_config)
    assert engine.scorer.stats()["compare_composite_keys"] == after_first


def test_field_mapping_from_camel_case_record():
    mapping = FieldMapping.from_dict(
        {"id": "m1", "sourceField": "name", "targetField": "hostname", "isKey": True}
    )
    assert mapping == FieldMapping(id="m1", source_field="name", target_field="hostname", is_key=True)


def test_config_accepts_mapping_records():
    config = ReconciliationConfig(
        mappings=[{"source_field": "name", "target_field": "hostname", "is_key": True}]
    )
    assert config.key_mappings[0].id == "name->hostname"


@pytest.mark.parametrize("threshold", [0, 1.5, -0.2])
def test_config_rejects_threshold_out_of_range(server_mappings, threshold):
    with pytest.raises(ValueError):
        ReconciliationConfig(mappings=server_mappings, fuzzy_threshold=threshold)


def test_to_dict_shape(source_rows, target_rows, server_config):
    payload = ReconciliationEngine(id_factory=make_counter_ids()).reconcile(
        source_rows, target_rows, server_config
    ).to_dict()

    assert payload["summary"] == {
        "total": 5,
        "matched": 2,
        "conflicts": 1,
        "orphans": {"source": 1, "target": 1},
    }
    first = payload["results"][0]
    assert first["id"] == "r1"
    assert first["status"] == "matched"
    assert first["confidenceScore"] == 1.0
    assert first["metadata"]["algorithm"] == "exact"
    assert "targetRow" not in payload["results"][3]


def test_to_dataframe_flattens_rows(source_rows, target_rows, server_config):
    frame = ReconciliationEngine().reconcile(source_rows, target_rows, server_config).to_dataframe()

    assert len(frame) == 5
    assert {"id", "status", "confidence_score", "source.name", "target.hostname"} <= set(frame.columns)
    assert list(frame["status"]) == ["matched", "conflict", "matched", "orphan", "orphan"]
    assert frame.loc[1, "difference_fields"] == "ip"


@pytest.mark.parametrize("threshold", [0.5, 0.8, 0.9, 1.0])
def test_exact_pairs_match_under_fuzzy_with_full_confidence(
    source_rows, target_rows, server_mappings, threshold
):
    config = ReconciliationConfig(mappings=server_mappings, fuzzy_threshold=threshold)
    exact = ReconciliationEngine(strategy="exact").reconcile(source_rows, target_rows, config)
    fuzzy = ReconciliationEngine(strategy="fuzzy").reconcile(source_rows, target_rows, config)

    fuzzy_pairs = {
        (r.source_index, r.target_index): r
        for r in fuzzy.results
        if r.status is not MatchStatus.ORPHAN
    }
    exact_pairs = [r for r in exact.results if r.status is not MatchStatus.ORPHAN]

    assert exact_pairs
    for pair in exact_pairs:
        counterpart = fuzzy_pairs[(pair.source_index, pair.target_index)]
        assert counterpart.confidence_score == 1.0


def test_all_scorer_caches_fill_during_fuzzy_run(source_rows, target_rows, server_config):
    engine = ReconciliationEngine(strategy="fuzzy", clear_cache=False)
    engine.reconcile(source_rows, target_rows, server_config)
    assert all(size > 0 for size in engine.scorer.stats().values())


def test_dataframe_integer_column_with_gaps_matches_list_rows():
    mappings = [FieldMapping(id="code", source_field="code", target_field="code", is_key=True)]
    config = ReconciliationConfig(mappings=mappings)
    source = pd.DataFrame({"code": [1, None], "label": ["a", "b"]})

    result = ReconciliationEngine().reconcile(source, [{"code": 1}], config)

    assert result.summary.matched == 1
    assert result.summary.orphans.source == 1


def test_boolean_keys_compare_as_lowercase_text():
    mappings = [FieldMapping(id="flag", source_field="flag", target_field="flag", is_key=True)]
    config = ReconciliationConfig(mappings=mappings)

    result = ReconciliationEngine().reconcile([{"flag": True}], [{"flag": "true"}], config)

    assert result.summary.matched == 1
