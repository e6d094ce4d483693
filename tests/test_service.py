import pytest

from core.errors import ConsistencyFault, DuplicateExample, InvalidArgument
from rag.composer import NO_MATCHES_TEXT, format_few_shot


def test_end_to_end_seed_search_duplicate_and_list(make_service, users_example):
    service = make_service(defaults=[users_example], seed=True)
    seeded = service.training_data()[0]

    results = service.find_similar("How many users exist?")
    assert [r.example.id for r in results] == [seeded.id]
    assert results[0].similarity >= 0.7

    with pytest.raises(DuplicateExample) as exc:
        service.add_example(users_example["question"], users_example["query"])
    assert exc.value.existing_id == seeded.id

    listing = service.list_examples(limit=10, domain="nonexistent")
    assert listing.examples == []
    assert listing.total == 1


def test_lower_threshold_never_returns_fewer_results(make_service, embedder):
    embedder.aliases.update({
        "close paraphrase": ("how many orders", 0.3),
        "loose paraphrase": ("how many orders", 0.8),
        "distant paraphrase": ("how many orders", 1.6),
    })
    service = make_service()
    for q in ["close paraphrase", "loose paraphrase", "distant paraphrase", "unrelated thing"]:
        service.add_example(q, f"RETURN '{q}'")

    previous = None
    for threshold in (0.9, 0.6, 0.3, 0.0):
        ids = {r.example.id for r in service.find_similar("how many orders", limit=10, threshold=threshold)}
        if previous is not None:
            assert previous <= ids
        previous = ids
    assert len(previous) >= 3


def test_results_are_best_first_and_truncated_to_limit(make_service, embedder):
    embedder.aliases.update({f"variant {i}": ("base question", 0.1 * (i + 1)) for i in range(5)})
    service = make_service()
    for i in range(5):
        service.add_example(f"variant {i}", f"RETURN {i}")

    results = service.find_similar("base question", limit=2, threshold=0.0)
    assert len(results) == 2
    assert results[0].similarity >= results[1].similarity
    assert results[0].example.question == "variant 0"


def test_remove_duplicates_requires_confirmation(make_service, write_training_data):
    write_training_data([
        {"id": "a", "question": "Q", "query": "A"},
        {"id": "b", "question": "q ", "query": "a"},
    ])
    service = make_service()

    preview = service.remove_duplicates(confirm=False)
    assert preview.confirmation_required
    assert preview.removed_count == 0
    assert len(service.training_data()) == 2


def test_remove_duplicates_rebuilds_and_second_run_is_a_noop(make_service, write_training_data, embedder):
    write_training_data([
        {"id": "dup-new", "question": "Count users", "query": "MATCH (u) RETURN count(u)",
         "metadata": {"created_at": "2024-06-01T00:00:00.000Z"}},
        {"id": "solo", "question": "List orders", "query": "MATCH (o:Order) RETURN o"},
        {"id": "dup-old", "question": "count users ", "query": "match (u) return count(u)",
         "metadata": {"created_at": "2023-06-01T00:00:00.000Z", "domain": "users"}},
        {"id": "other", "question": "List products", "query": "MATCH (p) RETURN p"},
    ])
    service = make_service()

    groups = service.find_duplicate_groups()
    assert [(g.keep_id, g.duplicate_ids) for g in groups] == [("dup-old", ["dup-new"])]

    result = service.remove_duplicates(confirm=True)
    assert result.removed_ids == ["dup-new"]
    assert (result.original_count, result.new_count) == (4, 3)
    assert [ex.id for ex in service.training_data()] == ["solo", "dup-old", "other"]

    for example in service.training_data():
        hits = service.find_similar(example.question, limit=1, threshold=0.0)
        assert hits[0].example.id == example.id
        assert hits[0].similarity == pytest.approx(1.0, abs=1e-4)

    calls = embedder.calls
    again = service.remove_duplicates(confirm=True)
    assert again.removed_count == 0
    assert embedder.calls == calls


def test_arguments_are_checked_before_any_embedding(make_service, embedder):
    service = make_service()
    service.add_example("q", "a")
    calls = embedder.calls

    with pytest.raises(InvalidArgument):
        service.find_similar("   ")
    with pytest.raises(InvalidArgument):
        service.find_similar("q", limit=0)
    with pytest.raises(InvalidArgument):
        service.find_similar("q", threshold=float("nan"))
    with pytest.raises(InvalidArgument):
        service.add_example("q2", "")
    with pytest.raises(InvalidArgument):
        service.add_example("q2", "a2", {"complexity": "extreme"})
    assert embedder.calls == calls


def test_limits_and_threshold_are_clamped(make_service, embedder):
    embedder.aliases.update({f"near {i}": ("target", 0.2) for i in range(12)})
    service = make_service()
    for i in range(12):
        service.add_example(f"near {i}", f"RETURN {i}")

    assert len(service.find_similar("target", limit=50, threshold=-3)) == 10
    assert service.find_similar("target", limit=5, threshold=7) == []
    assert len(service.list_examples(limit=500).examples) == 12


def test_list_examples_filters_by_domain_then_truncates(make_service):
    service = make_service()
    for i in range(4):
        service.add_example(f"q{i}", f"a{i}", {"domain": "sales" if i % 2 else "hr", "tags": ["x"]})

    listing = service.list_examples(limit=1, domain="sales")
    assert [ex.question for ex in listing.examples] == ["q1"]
    assert listing.total == 4
    assert len(service.list_examples().examples) == 4


def test_format_few_shot(make_service, users_example):
    service = make_service(defaults=[dict(users_example, metadata={"domain": "Users", "complexity": "simple"})],
                           seed=True)
    text = format_few_shot("How many users exist?", service.find_similar("How many users exist?"))
    assert text.startswith('Found 1 similar examples for: "How many users exist?"')
    assert "Query: MATCH (u:User) RETURN count(u)" in text
    assert "Domain: Users" in text
    assert "Complexity: simple" in text
    assert format_few_shot("x", []) == NO_MATCHES_TEXT


def test_stored_metadata_outside_the_add_policy_still_loads(make_service, write_training_data, settings):
    write_training_data([
        {"id": "a", "question": "first question", "query": "RETURN 1",
         "metadata": {"complexity": "hard", "domain": "legacy"}},
        {"id": "b", "question": "second question", "query": "RETURN 2"},
    ])
    service = make_service()

    assert [ex.id for ex in service.training_data()] == ["a", "b"]
    assert service.get_example("a").metadata.complexity == "hard"
    assert not list(settings.data_path.glob("training_data.json.corrupt-*"))

    with pytest.raises(InvalidArgument):
        service.add_example("third question", "RETURN 3", {"complexity": "hard"})


def test_service_reads_stop_after_a_consistency_fault(make_service, monkeypatch):
    service = make_service()
    service.add_example("q", "a")
    monkeypatch.setattr(service.coordinator.index, "search", lambda vector, k: [(3, 0.0)])
    with pytest.raises(ConsistencyFault):
        service.find_similar("q", threshold=0.0)

    with pytest.raises(ConsistencyFault):
        service.list_examples()
    with pytest.raises(ConsistencyFault):
        service.find_duplicate_groups()
    with pytest.raises(ConsistencyFault):
        service.remove_duplicates(confirm=False)
    with pytest.raises(ConsistencyFault):
        service.training_data()
