"""
Tests for batch partitioning and repository list parsing.
"""

import math

import pytest

from migration_orchestrator.exceptions import InvalidInput
from migration_orchestrator.models import Batch, JobMetadata
from migration_orchestrator.partitioner import create_batches, make_correlation_token, parse_repo_list


def _repos(count: int) -> list[str]:
    return [f"https://github.com/acme/repo-{n}" for n in range(count)]


@pytest.mark.unit
class TestCreateBatches:
    """Test splitting repositories into batches."""

    def test_seven_items_in_batches_of_three(self) -> None:
        batches = create_batches(_repos(7), 3)

        assert [len(b.repositories) for b in batches] == [3, 3, 1]
        assert [b.number for b in batches] == [1, 2, 3]
        assert all(b.total_batches == 3 for b in batches)
        assert all(b.total_repositories == 7 for b in batches)
        assert [b.is_last for b in batches] == [False, False, True]

    @pytest.mark.parametrize(("count", "size"), [(1, 1), (5, 5), (6, 5), (10, 3), (12, 4), (3, 10)])
    def test_concatenation_preserves_input(self, count: int, size: int) -> None:
        repos = _repos(count)

        batches = create_batches(repos, size)

        assert [repo for b in batches for repo in b.repositories] == repos
        assert len(batches) == math.ceil(count / size)
        assert all(len(b.repositories) <= size for b in batches)
        assert all(len(b.repositories) == size for b in batches[:-1])

    def test_empty_input_gives_no_batches(self) -> None:
        assert create_batches([], 5) == []

    @pytest.mark.parametrize("size", [0, -1])
    def test_non_positive_batch_size_rejected(self, size: int) -> None:
        with pytest.raises(InvalidInput, match="Batch size must be positive"):
            create_batches(_repos(3), size)

    def test_metadata_copied_onto_every_batch(self) -> None:
        metadata = JobMetadata(migration_id="99-1", issue_number=7, target_organization="acme-new")

        batches = create_batches(_repos(4), 2, metadata)

        assert all(b.metadata is metadata for b in batches)
        payload = batches[1].to_payload()
        assert payload["batchNumber"] == 2
        assert payload["issueNumber"] == 7
        assert payload["targetOrganization"] == "acme-new"
        assert payload["batchId"] == batches[1].correlation_token

    def test_tokens_unique_across_repeated_calls(self) -> None:
        tokens = [b.correlation_token for _ in range(20) for b in create_batches(_repos(6), 2)]

        assert len(tokens) == len(set(tokens))

    def test_token_carries_batch_number_and_timestamp(self) -> None:
        token = make_correlation_token(3, timestamp_ms=1700000000000)

        assert token.startswith("batch-3-1700000000000-")

    def test_payload_round_trip(self) -> None:
        batch = create_batches(_repos(3), 5, JobMetadata(migration_type="production", install_prereqs=False))[0]

        assert Batch.from_payload(batch.to_payload()) == batch


@pytest.mark.unit
class TestParseRepoList:
    """Test repository list parsing."""

    def test_json_array(self) -> None:
        text = '["https://github.com/acme/a", " https://github.com/acme/b ", ""]'

        assert parse_repo_list(text) == ["https://github.com/acme/a", "https://github.com/acme/b"]

    def test_invalid_json_rejected(self) -> None:
        with pytest.raises(InvalidInput, match="Invalid JSON repository list"):
            parse_repo_list('["https://github.com/acme/a",')

    def test_json_must_contain_strings(self) -> None:
        with pytest.raises(InvalidInput, match="array of strings"):
            parse_repo_list("[1, 2]")

    def test_text_from_issue_body(self) -> None:
        text = """
<details>
<summary>Repositories</summary>
<!-- paste one URL per line
https://github.com/acme/hidden -->
# Repositories to migrate
https://github.com/acme/a

  https://github.com/acme/b
not a repository
github.example.com/acme/c
<a href="https://github.com/acme/d">d</a>
</details>
"""
        assert parse_repo_list(text) == [
            "https://github.com/acme/a",
            "https://github.com/acme/b",
            "github.example.com/acme/c",
        ]

    def test_heading_with_url_is_kept(self) -> None:
        assert parse_repo_list("#https://github.com/acme/a") == ["#https://github.com/acme/a"]
