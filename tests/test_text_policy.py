import pytest

from cliptrail.models.entry import TextEntry
from cliptrail.utils.text_policy import TRUNCATION_MARKER, TextPolicy


def test_threshold_must_be_below_limit():
    with pytest.raises(ValueError):
        TextPolicy(truncate_limit=10_000, compression_threshold=10_000)


def test_truncate_keeps_prefix_and_appends_marker(policy):
    text = "a" * (2 * policy.truncate_limit)
    truncated = policy.truncate(text)
    assert len(truncated) == policy.truncate_limit + len(TRUNCATION_MARKER)
    assert truncated.endswith(TRUNCATION_MARKER)
    assert policy.truncate("short") == "short"


@pytest.mark.parametrize("text", [
    "",
    "plain ascii",
    "emoji \U0001F600 and accents éàü",
    "line\n" * 2000,
])
def test_compress_round_trip(policy, text):
    assert policy.decompress(policy.compress(text)) == text


def test_prepare_compresses_only_above_threshold(policy):
    small, size, compressed = policy.prepare("x" * policy.compression_threshold)
    assert not compressed and small == "x" * policy.compression_threshold
    assert size == policy.compression_threshold

    big_text = "y" * (policy.compression_threshold + 1)
    blob, size, compressed = policy.prepare(big_text)
    assert compressed and isinstance(blob, bytes)
    assert size == len(big_text)
    assert policy.decompress(blob) == big_text


def test_preview_of_compressed_entry(policy):
    text = "z" * 5_000
    blob, size, compressed = policy.prepare(text)
    entry = TextEntry(signature="s", payload=blob, original_size=size, compressed=compressed)
    preview, is_preview = policy.preview(entry)
    assert is_preview and preview == "z" * policy.preview_chars
    assert policy.read(entry) == text


def test_is_oversized_does_not_flag_truncated_text(policy):
    stored = policy.truncate("q" * 30_000)
    entry = TextEntry(signature="s", payload=stored, original_size=len(stored))
    assert not policy.is_oversized(entry)
    legacy = TextEntry(signature="s", payload="q" * 30_000, original_size=30_000)
    assert policy.is_oversized(legacy)
