import pytest

from llm_stream_kit.streaming.aggregator import ChunkAggregator
from llm_stream_kit.streaming.config import StreamConfig


class FakeClock:
    def __init__(self, now: float = 100.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestIngest:
    def test_words_finalized_across_chunks(self) -> None:
        """Fragments are joined and split on whitespace."""
        agg = ChunkAggregator()

        assert agg.ingest("Hel") == []
        assert agg.ingest("lo wor") == ["Hello"]
        assert agg.ingest("ld ") == ["world"]

        assert agg.units == ["Hello", "world"]
        assert agg.pending == ""
        assert agg.emitted_count == 2

    def test_finalize_on_empty_pending_is_noop(self) -> None:
        agg = ChunkAggregator()
        for chunk in ["Hel", "lo wor", "ld "]:
            agg.ingest(chunk)

        assert agg.finalize() is None
        assert agg.units == ["Hello", "world"]
        assert agg.emitted_count == 2

    def test_finalize_flushes_trailing_fragment(self) -> None:
        agg = ChunkAggregator()
        agg.ingest("one two")

        assert agg.pending == "two"
        assert agg.finalize() == "two"
        assert agg.units == ["one", "two"]
        assert agg.pending == ""

    def test_finalize_twice_is_safe(self) -> None:
        agg = ChunkAggregator()
        agg.ingest("tail")

        agg.finalize()
        agg.finalize()

        assert agg.units == ["tail"]

    def test_empty_chunk_is_noop(self) -> None:
        clock = FakeClock()
        agg = ChunkAggregator(clock=clock)

        assert agg.ingest("") == []
        assert agg.started_at is None
        assert agg.units == []

    def test_pending_never_holds_a_boundary(self) -> None:
        agg = ChunkAggregator()
        for chunk in ["a b", "\tc", "d\ne", " "]:
            agg.ingest(chunk)
            assert not any(ch.isspace() for ch in agg.pending)

    def test_units_returns_a_copy(self) -> None:
        agg = ChunkAggregator()
        agg.ingest("a b ")

        agg.units.append("mutated")

        assert agg.units == ["a", "b"]


class TestEmptyUnitPolicy:
    """Consecutive delimiters produce empty units, which are dropped by default."""

    def test_consecutive_delimiters_dropped_by_default(self) -> None:
        agg = ChunkAggregator()
        agg.ingest("a  b   c")
        agg.finalize()

        assert agg.units == ["a", "b", "c"]
        assert "" not in agg.units

    def test_leading_delimiter_dropped_by_default(self) -> None:
        agg = ChunkAggregator()
        agg.ingest(" hello ")

        assert agg.units == ["hello"]

    def test_keep_empty_retains_split_pieces(self) -> None:
        agg = ChunkAggregator(keep_empty=True)
        agg.ingest("a  b")
        agg.finalize()

        assert agg.units == ["a", "", "b"]
        assert agg.emitted_count == 3

    def test_policy_applies_across_chunk_boundaries(self) -> None:
        agg = ChunkAggregator()
        agg.ingest("a ")
        agg.ingest(" b ")

        assert agg.units == ["a", "b"]


class TestCustomDelimiter:
    def test_literal_delimiter(self) -> None:
        agg = ChunkAggregator(delimiter=",")
        agg.ingest("x,y z,")

        assert agg.units == ["x", "y z"]

    def test_multi_char_delimiter_split_across_chunks(self) -> None:
        agg = ChunkAggregator(delimiter="||")
        agg.ingest("left|")
        assert agg.units == []

        agg.ingest("|right")
        assert agg.units == ["left"]
        assert agg.pending == "right"

    def test_regex_metacharacters_are_literal(self) -> None:
        agg = ChunkAggregator(delimiter=".")
        agg.ingest("a.b.")

        assert agg.units == ["a", "b"]

    def test_empty_delimiter_rejected(self) -> None:
        with pytest.raises(ValueError, match="delimiter must be"):
            ChunkAggregator(delimiter="")


class TestChunkingInvariance:
    TEXT = "The quick  brown fox\njumps over\tthe lazy dog"

    def _stream(self, chunks: list[str], **kwargs: object) -> list[str]:
        agg = ChunkAggregator(**kwargs)  # type: ignore[arg-type]
        for chunk in chunks:
            agg.ingest(chunk)
        agg.finalize()
        return agg.units

    @pytest.mark.parametrize("size", [1, 2, 3, 5, 8, 100])
    def test_any_chunking_yields_same_units(self, size: int) -> None:
        chunks = [self.TEXT[i : i + size] for i in range(0, len(self.TEXT), size)]

        assert self._stream(chunks) == self.TEXT.split()

    @pytest.mark.parametrize("size", [1, 3, 7])
    def test_keep_empty_reconstructs_input(self, size: int) -> None:
        """With keep_empty, joining units on the delimiter gives back the input."""
        text = "a,,b,c,,,d"
        chunks = [text[i : i + size] for i in range(0, len(text), size)]

        units = self._stream(chunks, delimiter=",", keep_empty=True)

        assert ",".join(units) == text


class TestThroughput:
    def test_zero_before_any_chunk(self) -> None:
        agg = ChunkAggregator(clock=FakeClock())
        assert agg.throughput() == 0.0

    def test_zero_before_any_unit(self) -> None:
        clock = FakeClock()
        agg = ChunkAggregator(clock=clock)
        agg.ingest("partial")
        clock.now += 5

        assert agg.throughput() == 0.0

    def test_zero_when_no_time_elapsed(self) -> None:
        agg = ChunkAggregator(clock=FakeClock())
        agg.ingest("a b c ")

        assert agg.throughput() == 0.0

    def test_units_per_second(self) -> None:
        clock = FakeClock()
        agg = ChunkAggregator(clock=clock)
        agg.ingest("a b c d ")
        clock.now += 2.0

        assert agg.throughput() == pytest.approx(2.0)

    def test_non_decreasing_in_units_for_fixed_elapsed(self) -> None:
        clock = FakeClock()
        agg = ChunkAggregator(clock=clock)
        agg.ingest("start ")
        clock.now += 1.0

        rates = []
        for word in ["b ", "c ", "d "]:
            agg.ingest(word)
            rates.append(agg.throughput())

        assert rates == sorted(rates)

    def test_started_at_recorded_on_first_chunk(self) -> None:
        clock = FakeClock(now=42.0)
        agg = ChunkAggregator(clock=clock)
        agg.ingest("x")
        clock.now = 50.0
        agg.ingest("y")

        assert agg.started_at == 42.0


def test_metrics_hook_counts_units() -> None:
    from unittest.mock import MagicMock

    metrics_hook = MagicMock()
    agg = ChunkAggregator(metrics_hook=metrics_hook)
    agg.ingest("a b ")
    agg.ingest("c")
    agg.finalize()

    counts = [c.args[1] for c in metrics_hook.increment.call_args_list]
    assert sum(counts) == 3
    assert metrics_hook.increment.call_args_list[0].args[0] == "stream_units_emitted"


class TestStreamConfig:
    def test_defaults(self) -> None:
        config = StreamConfig()
        assert config.update_interval == 0.1
        assert config.delimiter is None
        assert config.keep_empty is False

    def test_rejects_non_positive_interval(self) -> None:
        with pytest.raises(ValueError, match="update_interval must be > 0"):
            StreamConfig(update_interval=0)

    def test_rejects_empty_delimiter(self) -> None:
        with pytest.raises(ValueError, match="delimiter must be"):
            StreamConfig(delimiter="")
